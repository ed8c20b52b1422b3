import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from reelpipe.core.constants import DEFAULT_FAILURE_MESSAGE, VideoStatus
from reelpipe.core.exceptions import NotFoundError, PermissionDeniedError, UpstreamUnavailableError
from reelpipe.models import Video
from reelpipe.services.video_status import (
    MISSING_UPSTREAM_MESSAGE, ObservedStatus, VideoStatusService, clamp_progress, is_regression,
    map_stream_status,
)


@pytest.mark.unit
class TestStatusMapping:
    @pytest.mark.parametrize("code,expected", [
        (0, VideoStatus.PROCESSING),
        (1, VideoStatus.PROCESSING),
        (2, VideoStatus.PROCESSING),
        (3, VideoStatus.READY),
        (4, VideoStatus.READY),
        (5, VideoStatus.FAILED),
        (6, VideoStatus.UPLOADING),
        (8, VideoStatus.FAILED),
        (99, VideoStatus.PROCESSING),
        (None, VideoStatus.PROCESSING),
    ])
    def test_map_stream_status(self, code, expected):
        assert map_stream_status(code) == expected

    @pytest.mark.parametrize("value,expected", [
        (-5, 0), (0, 0), (42.4, 42), (100, 100), (250, 100), ("37", 37), (None, None), ("abc", None),
    ])
    def test_clamp_progress(self, value, expected):
        assert clamp_progress(value) == expected

    def test_failure_message_comes_from_transcoding_messages(self):
        observed = ObservedStatus.from_stream_host({
            "status": 5,
            "transcodingMessages": [{"message": "codec not supported"}],
        })
        assert observed.status == VideoStatus.FAILED
        assert observed.error_message == "codec not supported"

        fallback = ObservedStatus.from_stream_host({"status": 5})
        assert fallback.error_message == DEFAULT_FAILURE_MESSAGE

    def test_progress_only_while_processing(self):
        assert ObservedStatus.from_stream_host({"status": 2, "encodeProgress": 140}).progress == 100
        assert ObservedStatus.from_stream_host({"status": 3, "encodeProgress": 100}).progress is None

    def test_regressions(self):
        assert is_regression(VideoStatus.PROCESSING, VideoStatus.UPLOADING)
        assert is_regression(VideoStatus.READY, VideoStatus.FAILED)
        assert is_regression(VideoStatus.FAILED, VideoStatus.PROCESSING)
        assert not is_regression(VideoStatus.UPLOADING, VideoStatus.READY)
        assert not is_regression(VideoStatus.PROCESSING, VideoStatus.PROCESSING)


class TestProcessingStatusQuery:
    @pytest.fixture
    def service(self, db_session, stream_host):
        return VideoStatusService(db_session, stream_host)

    async def test_uploading_to_processing_with_progress(self, service, seed, make_video, stream_host, refetch):
        video_id = await make_video(seed.project_id, seed.uploader_id, status="uploading")
        stream_host.get_video = AsyncMock(return_value={"status": 2, "encodeProgress": 10})

        response = await service.get_processing_status(seed.uploader_id, video_id)

        assert response.status == VideoStatus.PROCESSING
        assert response.progress == 10
        video = await refetch(Video, video_id)
        assert video.status == "processing"
        assert video.processing_progress == 10

    async def test_ready_fills_metadata_and_clears_progress(self, service, seed, make_video, stream_host, refetch):
        video_id = await make_video(seed.project_id, seed.uploader_id, status="processing",
                                    processing_progress=80, external_video_id="guid-ready")
        stream_host.get_video = AsyncMock(return_value={
            "status": 4,
            "length": 61.6,
            "width": 1920,
            "height": 1080,
            "framerate": 29.97,
            "thumbnailFileName": "thumb.jpg",
        })

        response = await service.get_processing_status(seed.owner_id, video_id)

        assert response.status == VideoStatus.READY
        assert response.progress is None
        assert response.resolution == "1920x1080"
        assert response.duration == 62
        video = await refetch(Video, video_id)
        assert video.processing_progress is None
        assert video.thumbnail_url == "https://cdn.stream.test/guid-ready/thumb.jpg"
        assert video.streaming_url.endswith("/12345/guid-ready")

    async def test_failed_keeps_error_message(self, service, seed, make_video, stream_host):
        video_id = await make_video(seed.project_id, seed.uploader_id, status="processing")
        stream_host.get_video = AsyncMock(return_value={
            "status": 5, "transcodingMessages": [{"message": "codec not supported"}],
        })

        response = await service.get_processing_status(seed.uploader_id, video_id)

        assert response.status == VideoStatus.FAILED
        assert response.error_message == "codec not supported"

    async def test_backwards_observation_is_ignored(self, service, seed, make_video, stream_host, refetch):
        video_id = await make_video(seed.project_id, seed.uploader_id, status="processing", processing_progress=50)
        stream_host.get_video = AsyncMock(return_value={"status": 6})

        response = await service.get_processing_status(seed.uploader_id, video_id)

        assert response.status == VideoStatus.PROCESSING
        assert response.progress == 50
        assert (await refetch(Video, video_id)).status == "processing"

    async def test_terminal_rows_do_not_hit_upstream(self, service, seed, make_video, stream_host):
        video_id = await make_video(seed.project_id, seed.uploader_id, status="ready")

        response = await service.get_processing_status(seed.uploader_id, video_id)

        assert response.status == VideoStatus.READY
        stream_host.get_video.assert_not_awaited()

    async def test_upstream_outage_propagates(self, service, seed, make_video, stream_host):
        video_id = await make_video(seed.project_id, seed.uploader_id, status="processing")
        stream_host.get_video = AsyncMock(side_effect=UpstreamUnavailableError("timeout"))

        with pytest.raises(UpstreamUnavailableError):
            await service.get_processing_status(seed.uploader_id, video_id)

    async def test_missing_upstream_asset_fails_the_video(self, service, seed, make_video, stream_host, refetch):
        video_id = await make_video(seed.project_id, seed.uploader_id, status="processing", processing_progress=30)
        stream_host.get_video = AsyncMock(side_effect=NotFoundError("Video not found on the stream host."))

        response = await service.get_processing_status(seed.uploader_id, video_id)

        assert response.status == VideoStatus.FAILED
        assert response.error_message == MISSING_UPSTREAM_MESSAGE
        video = await refetch(Video, video_id)
        assert video.status == "failed"
        assert video.processing_progress is None

        # terminal now, so later queries stay local
        await service.get_processing_status(seed.uploader_id, video_id)
        assert stream_host.get_video.await_count == 1

    async def test_deleted_and_foreign_videos(self, service, seed, make_video):
        deleted = await make_video(seed.project_id, seed.uploader_id, deleted_at=datetime.now(timezone.utc))
        live = await make_video(seed.project_id, seed.uploader_id)

        with pytest.raises(NotFoundError):
            await service.get_processing_status(seed.uploader_id, deleted)
        with pytest.raises(PermissionDeniedError):
            await service.get_processing_status(seed.outsider_id, live)

    async def test_status_endpoint(self, client, seed, auth, make_video):
        video_id = await make_video(seed.project_id, seed.uploader_id, status="uploading")
        auth.user_id = seed.deleter_id

        response = await client.get(f"/api/v1/videos/{video_id}/status")

        assert response.status_code == 200
        assert response.json() == {
            "status": "processing", "progress": 10, "error_message": None, "resolution": None, "duration": None,
        }

    async def test_status_endpoint_upstream_unavailable(self, client, seed, auth, make_video, stream_host):
        video_id = await make_video(seed.project_id, seed.uploader_id)
        stream_host.get_video = AsyncMock(side_effect=UpstreamUnavailableError("Failed to fetch video status."))
        auth.user_id = seed.owner_id

        response = await client.get(f"/api/v1/videos/{video_id}/status")

        assert response.status_code == 503
        assert response.json()["code"] == "UPSTREAM_UNAVAILABLE"


class TestStreamHostWebhook:
    @pytest.fixture
    def service(self, db_session, stream_host):
        return VideoStatusService(db_session, stream_host)

    async def test_ready_webhook_fetches_metadata(self, service, seed, make_video, stream_host, refetch):
        video_id = await make_video(seed.project_id, seed.uploader_id, external_video_id="guid-w1")
        stream_host.get_video = AsyncMock(return_value={"status": 3, "length": 10, "width": 640, "height": 360})

        result = await service.handle_webhook(12345, "guid-w1", 3)

        assert result["success"] is True
        video = await refetch(Video, video_id)
        assert video.status == "ready"
        assert (video.width, video.height, video.duration) == (640, 360, 10)

    async def test_ready_webhook_survives_metadata_outage(self, service, seed, make_video, stream_host, refetch):
        video_id = await make_video(seed.project_id, seed.uploader_id, external_video_id="guid-w2")
        stream_host.get_video = AsyncMock(side_effect=UpstreamUnavailableError("down"))

        result = await service.handle_webhook(12345, "guid-w2", 4)

        assert result["success"] is True
        assert (await refetch(Video, video_id)).status == "ready"

    async def test_failed_webhook(self, service, seed, make_video, refetch):
        video_id = await make_video(seed.project_id, seed.uploader_id, external_video_id="guid-w3")

        await service.handle_webhook(12345, "guid-w3", 5)

        video = await refetch(Video, video_id)
        assert video.status == "failed"
        assert video.error_message == "Video encoding failed"

    async def test_ignored_and_rejected_webhooks(self, service, seed, make_video, refetch):
        video_id = await make_video(seed.project_id, seed.uploader_id, external_video_id="guid-w4")

        assert (await service.handle_webhook(99999, "guid-w4", 3))["success"] is False
        assert (await service.handle_webhook(12345, "guid-unknown", 3))["success"] is False
        assert (await service.handle_webhook(12345, "guid-w4", 9))["success"] is True
        assert (await refetch(Video, video_id)).status == "processing"

    async def test_webhook_endpoint(self, client, seed, make_video, refetch):
        video_id = await make_video(seed.project_id, seed.uploader_id, external_video_id="guid-w5")

        response = await client.post("/api/v1/webhooks/stream-host",
                                     json={"VideoLibraryId": 12345, "VideoGuid": "guid-w5", "Status": 8})

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert (await refetch(Video, video_id)).status == "failed"
