"""Playback and original-file download links for ready videos"""

import logging
import time
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reelpipe.core.constants import DOWNLOAD_URL_DEFAULT_TTL_SECONDS, VideoStatus
from reelpipe.core.exceptions import NotFoundError, VideoNotReadyError
from reelpipe.models.video import Video
from reelpipe.schemas.video import DownloadResponse, PlaybackResponse
from reelpipe.services.permissions import PermissionService
from reelpipe.services.stream_host import StreamHostClient

logger = logging.getLogger(__name__)


class VideoPlaybackService:
    def __init__(self, db: AsyncSession, stream_host: StreamHostClient, clock=time.time):
        self.db = db
        self.stream_host = stream_host
        self.permissions = PermissionService(db)
        self.clock = clock

    async def _get_viewable(self, user_id: str, video_id: str) -> Video:
        stmt = select(Video).where(Video.id == video_id, Video.deleted_at.is_(None))
        result = await self.db.execute(stmt)
        video = result.scalar_one_or_none()
        if not video:
            raise NotFoundError("Video not found")

        if video.uploaded_by != user_id:
            project = await self.permissions.get_project(video.project_id)
            await self.permissions.require_view(project, user_id)
        return video

    async def get_playback(self, user_id: str, video_id: str) -> PlaybackResponse:
        video = await self._get_viewable(user_id, video_id)
        if video.status != VideoStatus.READY.value:
            logger.info(f"Playback requested for video {video_id} in status {video.status}")
            raise VideoNotReadyError(f"Video is not ready for playback (status: {video.status})")

        playback_url = video.streaming_url or self.stream_host.streaming_url(video.external_video_id)
        return PlaybackResponse(playback_url=playback_url, thumbnail_url=video.thumbnail_url)

    async def get_download(
        self,
        user_id: str,
        video_id: str,
        expires_in: int = DOWNLOAD_URL_DEFAULT_TTL_SECONDS,
    ) -> DownloadResponse:
        video = await self._get_viewable(user_id, video_id)
        if video.status != VideoStatus.READY.value:
            logger.info(f"Download requested for video {video_id} in status {video.status}")
            raise VideoNotReadyError(f"Video is not ready for download (status: {video.status})")

        expires_at = int(self.clock()) + expires_in
        download_url = self.stream_host.download_url(video.external_video_id, expires_at)
        logger.info(f"Download link issued for video {video_id}, expires at {expires_at}")
        return DownloadResponse(
            download_url=download_url,
            expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc),
        )
