import pytest
from unittest.mock import AsyncMock, Mock
from sqlalchemy import func, select

from reelpipe.core.config import settings
from reelpipe.core.constants import VideoStatus
from reelpipe.core.exceptions import (
    NotFoundError, PermissionDeniedError, UpstreamUnavailableError, ValidationError,
)
from reelpipe.models import Project, Video
from reelpipe.schemas.video import CreateUploadRequest
from reelpipe.services.stream_host import StreamHostClient, verify_upload_signature
from reelpipe.services.upload_credentials import UploadCredentialIssuer

NOW = 1_700_000_000


def upload_request(project_id, **overrides):
    data = {
        "project_id": project_id,
        "title": "Director's cut",
        "description": "Second pass",
        "tags": ["rough", "v1"],
        "file_name": "cut.mp4",
        "file_size": 5 * 1024 * 1024,
        "mime_type": "video/mp4",
    }
    data.update(overrides)
    return CreateUploadRequest(**data)


async def count_videos(db_session):
    result = await db_session.execute(select(func.count()).select_from(Video))
    return result.scalar_one()


class TestUploadCredentialIssuer:
    """Issuing upload credentials"""

    @pytest.fixture
    def issuer(self, db_session, stream_host):
        return UploadCredentialIssuer(db_session, stream_host, clock=lambda: NOW)

    async def test_issue_creates_pending_video_and_credential(self, issuer, seed, stream_host, db_session, refetch):
        response = await issuer.issue(seed.uploader_id, upload_request(seed.project_id))

        headers = response.upload.headers
        assert response.video.status == VideoStatus.UPLOADING
        assert response.video.external_id == headers.video_id
        assert response.upload.endpoint == settings.stream_tus_endpoint
        assert headers.library_id == "12345"
        assert headers.auth_expire == NOW + settings.upload_credential_ttl_seconds
        assert verify_upload_signature(headers.auth_signature, "12345", "test-api-key",
                                       headers.auth_expire, headers.video_id)
        assert response.upload.metadata.mime_type == "video/mp4"
        assert response.upload.metadata.title == "Director's cut"

        stream_host.create_video.assert_awaited_once_with("Director's cut", "collection-1")

        video = await refetch(Video, response.video.id)
        assert video.status == "uploading"
        assert video.processing_progress is None
        assert video.external_video_id == headers.video_id
        assert video.tags == ["rough", "v1"]
        assert video.version_number == 1
        assert video.is_current_version is True

        project = await refetch(Project, seed.project_id)
        assert project.video_count == 1

    async def test_credential_is_scoped_to_one_video(self, issuer, seed):
        first = await issuer.issue(seed.uploader_id, upload_request(seed.project_id, title="A"))
        second = await issuer.issue(seed.uploader_id, upload_request(seed.project_id, title="B"))

        a = first.upload.headers
        b = second.upload.headers
        assert a.video_id != b.video_id
        assert not verify_upload_signature(a.auth_signature, "12345", "test-api-key", a.auth_expire, b.video_id)

    async def test_upstream_failure_rolls_back(self, issuer, seed, stream_host, db_session, refetch):
        stream_host.create_video = AsyncMock(side_effect=UpstreamUnavailableError("down"))

        with pytest.raises(UpstreamUnavailableError):
            await issuer.issue(seed.uploader_id, upload_request(seed.project_id))

        assert await count_videos(db_session) == 0
        project = await refetch(Project, seed.project_id)
        assert project.video_count == 0
        stream_host.delete_video.assert_not_awaited()

    async def test_failure_after_upstream_creation_deletes_upstream_video(self, issuer, seed, stream_host, db_session):
        stream_host.create_video = AsyncMock(return_value="guid-orphan")
        stream_host.sign = Mock(side_effect=UpstreamUnavailableError("signing failed"))

        with pytest.raises(UpstreamUnavailableError):
            await issuer.issue(seed.uploader_id, upload_request(seed.project_id))

        assert await count_videos(db_session) == 0
        stream_host.delete_video.assert_awaited_once_with("guid-orphan")

    async def test_unconfigured_stream_host(self, db_session, seed):
        unconfigured = StreamHostClient(api_url="https://stream.test", api_key="", library_id="")
        issuer = UploadCredentialIssuer(db_session, unconfigured, clock=lambda: NOW)

        with pytest.raises(UpstreamUnavailableError):
            await issuer.issue(seed.owner_id, upload_request(seed.project_id))

    @pytest.mark.parametrize("overrides", [
        {"mime_type": "image/png"},
        {"file_size": 11 * 1024 * 1024 * 1024},
    ])
    async def test_rejects_invalid_files(self, issuer, seed, db_session, overrides):
        with pytest.raises(ValidationError):
            await issuer.issue(seed.owner_id, upload_request(seed.project_id, **overrides))
        assert await count_videos(db_session) == 0

    async def test_permissions(self, issuer, seed, stream_host):
        with pytest.raises(PermissionDeniedError):
            await issuer.issue(seed.outsider_id, upload_request(seed.project_id))
        # member without upload rights
        with pytest.raises(PermissionDeniedError):
            await issuer.issue(seed.deleter_id, upload_request(seed.project_id))
        with pytest.raises(NotFoundError):
            await issuer.issue(seed.owner_id, upload_request("missing-project"))
        stream_host.create_video.assert_not_awaited()

    async def test_new_versions_join_the_lineage_root(self, issuer, seed, refetch):
        v1 = await issuer.issue(seed.owner_id, upload_request(seed.project_id, title="v1"))
        v2 = await issuer.issue(seed.owner_id, upload_request(seed.project_id, title="v2",
                                                              parent_video_id=v1.video.id))
        v3 = await issuer.issue(seed.owner_id, upload_request(seed.project_id, title="v3",
                                                              parent_video_id=v2.video.id))

        first = await refetch(Video, v1.video.id)
        second = await refetch(Video, v2.video.id)
        third = await refetch(Video, v3.video.id)

        assert (first.version_number, second.version_number, third.version_number) == (1, 2, 3)
        assert second.parent_video_id == v1.video.id
        assert third.parent_video_id == v1.video.id
        assert [first.is_current_version, second.is_current_version, third.is_current_version] == [False, False, True]

    async def test_parent_must_belong_to_the_project(self, issuer, seed, make_video):
        foreign = await make_video(seed.other_project_id, seed.outsider_id, status="ready")

        with pytest.raises(NotFoundError):
            await issuer.issue(seed.owner_id, upload_request(seed.project_id, parent_video_id=foreign))


class TestUploadAPI:
    async def test_create_upload(self, client, seed, auth):
        auth.user_id = seed.uploader_id
        response = await client.post("/api/v1/videos/uploads", json={
            "project_id": seed.project_id,
            "title": "  Trailer  ",
            "file_name": "trailer.mov",
            "file_size": 2048,
            "mime_type": "video/quicktime",
        })

        assert response.status_code == 201
        body = response.json()
        assert body["video"]["status"] == "uploading"
        assert set(body["upload"]["headers"]) == {"auth_signature", "auth_expire", "video_id", "library_id"}
        assert body["upload"]["metadata"] == {"mime_type": "video/quicktime", "title": "Trailer"}

    async def test_shape_errors_use_validation_code(self, client, seed, auth):
        auth.user_id = seed.owner_id
        response = await client.post("/api/v1/videos/uploads", json={
            "project_id": seed.project_id,
            "title": "   ",
            "file_name": "x.mp4",
            "file_size": 10,
            "mime_type": "video/mp4",
        })

        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    async def test_permission_denied_body(self, client, seed, auth):
        auth.user_id = seed.outsider_id
        response = await client.post("/api/v1/videos/uploads", json={
            "project_id": seed.project_id,
            "title": "Nope",
            "file_name": "x.mp4",
            "file_size": 10,
            "mime_type": "video/mp4",
        })

        assert response.status_code == 403
        assert response.json() == {"code": "PERMISSION_DENIED", "detail": "You do not have access to this project"}
