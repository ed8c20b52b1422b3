"""Upload credential issuance"""

import logging
import time
import uuid
from typing import Callable, Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from reelpipe.core.config import settings
from reelpipe.core.constants import VideoStatus
from reelpipe.core.exceptions import NotFoundError, UpstreamUnavailableError, ValidationError
from reelpipe.models.project import Project
from reelpipe.models.video import Video
from reelpipe.schemas.video import (
    CreateUploadRequest, CreateUploadResponse, UploadDestination, UploadHeaders,
    UploadMetadata, UploadVideoSummary,
)
from reelpipe.services.permissions import PermissionService
from reelpipe.services.stream_host import StreamHostClient

logger = logging.getLogger(__name__)


class UploadCredentialIssuer:
    """Creates the pending video row and a signed, time-boxed upload destination.

    The row, the new version flags and the project's video count are written
    in one transaction that only commits once the stream host has handed out
    a video slot. Any failure rolls the row back, and a slot that was already
    created upstream is deleted best-effort.
    """

    def __init__(
        self,
        db: AsyncSession,
        stream_host: StreamHostClient,
        clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.stream_host = stream_host
        self.clock = clock
        self.permissions = PermissionService(db)

    async def issue(self, user_id: str, request: CreateUploadRequest) -> CreateUploadResponse:
        logger.info(f"Creating upload - user_id: {user_id}, project_id: {request.project_id}, file: {request.file_name}")

        if not self.stream_host.is_configured:
            logger.error("Stream host API is not configured")
            raise UpstreamUnavailableError("Video storage is not configured.")

        self._validate_file(request)

        project = await self.permissions.get_project(request.project_id)
        await self.permissions.require_upload(project, user_id)

        parent = None
        if request.parent_video_id:
            parent = await self._get_parent(request.parent_video_id, project)

        video = Video(
            id=str(uuid.uuid4()),
            project_id=project.id,
            uploaded_by=user_id,
            title=request.title,
            description=request.description,
            tags=list(request.tags),
            original_file_name=request.file_name,
            file_size=request.file_size,
            mime_type=request.mime_type,
            status=VideoStatus.UPLOADING.value,
            processing_progress=None,
            version_number=1,
            is_current_version=True,
        )

        external_id: Optional[str] = None
        try:
            if parent is not None:
                await self._start_new_version(video, parent)

            self.db.add(video)
            await self.db.flush()

            external_id = await self.stream_host.create_video(request.title, project.collection_id)
            video.external_video_id = external_id
            video.external_library_id = self.stream_host.library_id

            expires_at = int(self.clock()) + settings.upload_credential_ttl_seconds
            signature = self.stream_host.sign(external_id, expires_at)

            project.video_count = (project.video_count or 0) + 1
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Upload issuance failed, rolled back video {video.id}: {e}")
            if external_id:
                await self.stream_host.delete_video(external_id)
            raise

        logger.info(f"Upload initialized - video_id: {video.id}, external_id: {external_id}")

        return CreateUploadResponse(
            video=UploadVideoSummary(id=video.id, external_id=external_id, status=VideoStatus.UPLOADING),
            upload=UploadDestination(
                endpoint=settings.stream_tus_endpoint,
                headers=UploadHeaders(
                    auth_signature=signature,
                    auth_expire=expires_at,
                    video_id=external_id,
                    library_id=self.stream_host.library_id,
                ),
                metadata=UploadMetadata(mime_type=request.mime_type, title=request.title),
            ),
        )

    def _validate_file(self, request: CreateUploadRequest) -> None:
        if request.file_size > settings.upload_max_file_size:
            max_gb = settings.upload_max_file_size / (1024 * 1024 * 1024)
            raise ValidationError(f"File too large. Maximum size: {max_gb:.1f}GB")
        if not request.mime_type.lower().startswith("video/"):
            raise ValidationError(f"Must be a video MIME type, got {request.mime_type}")

    async def _get_parent(self, parent_id: str, project: Project) -> Video:
        stmt = select(Video).where(
            Video.id == parent_id,
            Video.project_id == project.id,
            Video.deleted_at.is_(None),
        )
        result = await self.db.execute(stmt)
        parent = result.scalar_one_or_none()
        if not parent:
            raise NotFoundError("Parent video not found")
        return parent

    async def _start_new_version(self, video: Video, parent: Video) -> None:
        root_id = parent.lineage_root_id
        stmt = select(Video).where(
            or_(Video.id == root_id, Video.parent_video_id == root_id),
            Video.deleted_at.is_(None),
        )
        result = await self.db.execute(stmt)
        chain = result.scalars().all()

        for member in chain:
            member.is_current_version = False

        video.parent_video_id = root_id
        video.version_number = max((member.version_number or 1) for member in chain) + 1
        video.is_current_version = True
        logger.info(f"New version {video.version_number} in lineage {root_id}")
