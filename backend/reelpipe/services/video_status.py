"""Processing status: mapping stream host state onto videos"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reelpipe.core.constants import (
    DEFAULT_FAILURE_MESSAGE, STATUS_ORDER, STREAM_HOST_TO_VIDEO_STATUS,
    StreamHostStatus, VideoStatus,
)
from reelpipe.core.exceptions import NotFoundError, UpstreamUnavailableError
from reelpipe.models.video import Video
from reelpipe.schemas.video import ProcessingStatusResponse
from reelpipe.services.permissions import PermissionService
from reelpipe.services.stream_host import StreamHostClient

logger = logging.getLogger(__name__)

MISSING_UPSTREAM_MESSAGE = "Video is no longer available on the stream host"


def map_stream_status(code: Optional[int]) -> VideoStatus:
    """Unknown codes count as still processing"""
    try:
        return STREAM_HOST_TO_VIDEO_STATUS.get(StreamHostStatus(code), VideoStatus.PROCESSING)
    except (ValueError, TypeError):
        return VideoStatus.PROCESSING


def clamp_progress(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return max(0, min(100, int(round(float(value)))))
    except (TypeError, ValueError):
        return None


@dataclass
class ObservedStatus:
    status: VideoStatus
    progress: Optional[int] = None
    error_message: Optional[str] = None
    duration: Optional[float] = None
    width: Optional[int] = None
    height: Optional[int] = None
    fps: Optional[float] = None
    thumbnail_file: Optional[str] = None

    @classmethod
    def from_stream_host(cls, data: Dict[str, Any]) -> "ObservedStatus":
        status = map_stream_status(data.get("status"))
        messages = data.get("transcodingMessages") or []
        error_message = None
        if status == VideoStatus.FAILED:
            first = messages[0] if messages else {}
            error_message = (first.get("message") if isinstance(first, dict) else None) or DEFAULT_FAILURE_MESSAGE

        length = data.get("length") or 0
        width = data.get("width") or 0
        height = data.get("height") or 0
        framerate = data.get("framerate") or 0
        return cls(
            status=status,
            progress=clamp_progress(data.get("encodeProgress")) if status == VideoStatus.PROCESSING else None,
            error_message=error_message,
            duration=round(length) if length > 0 else None,
            width=width if width > 0 else None,
            height=height if height > 0 else None,
            fps=round(framerate) if framerate > 0 else None,
            thumbnail_file=data.get("thumbnailFileName"),
        )


def is_regression(current: VideoStatus, observed: VideoStatus) -> bool:
    """True when applying `observed` would move a video backwards or across terminals"""
    if current == observed:
        return False
    if current.is_terminal:
        return True
    return STATUS_ORDER[observed] < STATUS_ORDER[current]


def apply_observation(video: Video, observed: ObservedStatus, stream_host: StreamHostClient) -> bool:
    """Write an observed state onto the row. Returns True when the row changed"""
    current = VideoStatus(video.status)
    if is_regression(current, observed.status):
        logger.debug(f"Ignoring stale status {observed.status.value} for video {video.id} (current {current.value})")
        return False

    changed = current != observed.status
    video.status = observed.status.value

    if observed.status == VideoStatus.PROCESSING:
        if observed.progress is not None and observed.progress != video.processing_progress:
            video.processing_progress = observed.progress
            changed = True
    elif video.processing_progress is not None:
        video.processing_progress = None
        changed = True

    if observed.status == VideoStatus.FAILED and changed:
        video.error_message = observed.error_message or DEFAULT_FAILURE_MESSAGE

    if observed.status == VideoStatus.READY and changed:
        video.error_message = None
        if observed.duration is not None:
            video.duration = observed.duration
        if observed.width is not None:
            video.width = observed.width
        if observed.height is not None:
            video.height = observed.height
        if observed.fps is not None:
            video.fps = observed.fps
        if video.external_video_id:
            video.thumbnail_url = stream_host.thumbnail_url(video.external_video_id, observed.thumbnail_file)
            video.streaming_url = stream_host.streaming_url(video.external_video_id)

    if changed:
        logger.info(f"Video {video.id} status {current.value} -> {observed.status.value} (progress={video.processing_progress})")
    return changed


def to_status_response(video: Video) -> ProcessingStatusResponse:
    resolution = f"{video.width}x{video.height}" if video.width and video.height else None
    status = VideoStatus(video.status)
    return ProcessingStatusResponse(
        status=status,
        progress=video.processing_progress if status == VideoStatus.PROCESSING else None,
        error_message=video.error_message if status == VideoStatus.FAILED else None,
        resolution=resolution,
        duration=video.duration,
    )


class VideoStatusService:
    """Answers status queries and applies webhook notifications"""

    def __init__(self, db: AsyncSession, stream_host: StreamHostClient):
        self.db = db
        self.stream_host = stream_host
        self.permissions = PermissionService(db)

    async def get_live_video(self, video_id: str) -> Video:
        stmt = select(Video).where(Video.id == video_id, Video.deleted_at.is_(None))
        result = await self.db.execute(stmt)
        video = result.scalar_one_or_none()
        if not video:
            raise NotFoundError("Video not found")
        return video

    async def get_processing_status(self, user_id: str, video_id: str) -> ProcessingStatusResponse:
        video = await self.get_live_video(video_id)
        project = await self.permissions.get_project(video.project_id)
        if video.uploaded_by != user_id:
            await self.permissions.require_view(project, user_id)

        # Terminal rows are final; no need to ask upstream again
        if VideoStatus(video.status).is_terminal or not video.external_video_id:
            return to_status_response(video)

        try:
            observed = ObservedStatus.from_stream_host(await self.stream_host.get_video(video.external_video_id))
        except NotFoundError:
            # The asset is gone upstream; it will never finish processing
            logger.warning(f"Video {video.id} has no stream host asset {video.external_video_id}")
            observed = ObservedStatus(status=VideoStatus.FAILED, error_message=MISSING_UPSTREAM_MESSAGE)
        if apply_observation(video, observed, self.stream_host):
            await self.db.commit()

        return to_status_response(video)

    async def handle_webhook(self, library_id: int, video_guid: str, status_code: int) -> Dict[str, Any]:
        logger.info(f"Stream host webhook: guid={video_guid}, status={status_code}, library={library_id}")

        if not self.stream_host.is_configured:
            logger.error("Stream host webhook received but API is not configured")
            return {"success": False, "message": "Stream host not configured"}

        if str(library_id) != str(self.stream_host.library_id):
            logger.warning(f"Webhook library mismatch: expected {self.stream_host.library_id}, got {library_id}")
            return {"success": False, "message": "Library ID mismatch"}

        stmt = select(Video).where(Video.external_video_id == video_guid)
        result = await self.db.execute(stmt)
        video = result.scalar_one_or_none()
        if not video:
            logger.warning(f"Webhook for unknown video guid {video_guid}")
            return {"success": False, "message": "Video not found"}

        try:
            code = StreamHostStatus(status_code)
        except ValueError:
            code = None
        if code not in STREAM_HOST_TO_VIDEO_STATUS:
            logger.debug(f"Ignoring webhook status {status_code} for {video_guid}")
            return {"success": True, "message": "Webhook status ignored"}

        status = STREAM_HOST_TO_VIDEO_STATUS[code]
        if status == VideoStatus.READY:
            # Ready webhooks carry no metadata; fetch it once
            try:
                observed = ObservedStatus.from_stream_host(await self.stream_host.get_video(video_guid))
                observed.status = VideoStatus.READY
            except (UpstreamUnavailableError, NotFoundError) as e:
                logger.error(f"Failed to fetch metadata for ready video {video_guid}: {e}")
                observed = ObservedStatus(status=VideoStatus.READY)
        elif status == VideoStatus.FAILED:
            observed = ObservedStatus(status=VideoStatus.FAILED, error_message="Video encoding failed")
        else:
            observed = ObservedStatus(status=status)

        if apply_observation(video, observed, self.stream_host):
            await self.db.commit()
        return {"success": True, "message": f"Video status is {video.status}"}
