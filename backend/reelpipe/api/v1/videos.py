from fastapi import APIRouter, Depends, HTTPException, Query, status as http_status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from reelpipe.core.constants import (
    DOWNLOAD_URL_DEFAULT_TTL_SECONDS, DOWNLOAD_URL_MAX_TTL_SECONDS, DOWNLOAD_URL_MIN_TTL_SECONDS, VideoStatus,
)
from reelpipe.core.database import get_db
from reelpipe.core.exceptions import ReelpipeError
from reelpipe.core.security import get_current_user
from reelpipe.models.user import User
from reelpipe.schemas.video import (
    BulkDeleteRequest, BulkDeleteResponse, DeleteResponse, DownloadResponse, PaginatedVideoResponse,
    PlaybackResponse, ProcessingStatusResponse, UpdateVideoRequest, VideoDetail,
)
from reelpipe.services.stream_host import StreamHostClient, get_stream_host
from reelpipe.services.video_deletion import VideoDeletionService
from reelpipe.services.video_metadata import VideoMetadataService
from reelpipe.services.video_playback import VideoPlaybackService
from reelpipe.services.video_queries import MAX_PAGE_SIZE, VideoQueryService
from reelpipe.services.video_status import VideoStatusService

router = APIRouter()

import logging
logger = logging.getLogger(__name__)


def _internal_error(detail: str) -> HTTPException:
    return HTTPException(status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


@router.get("", response_model=PaginatedVideoResponse, summary="List videos", operation_id="list_videos")
async def list_videos(
    project_id: str = Query(..., description="Project to list"),
    status: Optional[VideoStatus] = Query(None, description="Only videos in this status"),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    cursor: Optional[str] = Query(None, description="next_cursor from the previous page"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List a project's current, non-deleted videos, newest first

    Args:
        project_id (str): project id
        status (Optional[VideoStatus]): uploading, processing, ready or failed
        limit (int): page size, 1-100
        cursor (Optional[str]): opaque cursor returned by the previous page

    Returns:
        PaginatedVideoResponse: {videos, next_cursor}; next_cursor is null on the last page

    Examples:
        GET /api/v1/videos?project_id=...&status=processing&limit=20
    """
    try:
        service = VideoQueryService(db)
        return await service.list_videos(current_user.id, project_id, status, limit, cursor)
    except ReelpipeError:
        raise
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to list videos of project {project_id}: {e}", exc_info=True)
        raise _internal_error("Failed to list videos.")


@router.post("/bulk-delete", response_model=BulkDeleteResponse, summary="Delete several videos",
             operation_id="bulk_delete_videos")
async def bulk_delete_videos(
    request: BulkDeleteRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    stream_host: StreamHostClient = Depends(get_stream_host),
):
    """Delete 1-50 videos in one request

    The whole id set is validated before anything is touched: an unknown id,
    an already deleted id or a single permission failure rejects the request.
    Stream host deletions that fail come back as PARTIAL_FAILURE warnings.
    """
    try:
        service = VideoDeletionService(db, stream_host)
        return await service.bulk_delete(current_user.id, request.ids)
    except ReelpipeError:
        raise
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Bulk delete of {len(request.ids)} videos failed: {e}", exc_info=True)
        raise _internal_error("Failed to delete videos.")


@router.get("/{video_id}", response_model=VideoDetail, summary="Get video", operation_id="get_video")
async def get_video(
    video_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        service = VideoQueryService(db)
        return await service.get_video(current_user.id, video_id)
    except ReelpipeError:
        raise
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to load video {video_id}: {e}", exc_info=True)
        raise _internal_error("Failed to load video.")


@router.patch("/{video_id}", response_model=VideoDetail, summary="Update video metadata",
              operation_id="update_video")
async def update_video(
    video_id: str,
    request: UpdateVideoRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Edit title, description or tags

    Only the fields present in the body change. The uploader, the project
    owner and members allowed to upload may edit.

    Examples:
        PATCH /api/v1/videos/{video_id}
        {"title": "Final cut", "tags": ["review"]}
    """
    try:
        service = VideoMetadataService(db)
        return await service.update(current_user.id, video_id, request)
    except ReelpipeError:
        raise
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to update video {video_id}: {e}", exc_info=True)
        raise _internal_error("Failed to update video.")


@router.get("/{video_id}/status", response_model=ProcessingStatusResponse, summary="Get processing status",
            operation_id="get_video_status")
async def get_video_status(
    video_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    stream_host: StreamHostClient = Depends(get_stream_host),
):
    """Current processing state of a video

    Non-terminal videos are refreshed from the stream host before answering.
    `progress` is only present while the video is processing.

    Returns:
        ProcessingStatusResponse: {status, progress, error_message, resolution, duration}
    """
    try:
        service = VideoStatusService(db, stream_host)
        return await service.get_processing_status(current_user.id, video_id)
    except ReelpipeError:
        raise
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to fetch status of video {video_id}: {e}", exc_info=True)
        raise _internal_error("Failed to fetch video status.")


@router.get("/{video_id}/playback", response_model=PlaybackResponse, summary="Get playback URL",
            operation_id="get_video_playback")
async def get_video_playback(
    video_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    stream_host: StreamHostClient = Depends(get_stream_host),
):
    """Embed URL for a ready video; VIDEO_NOT_READY otherwise"""
    try:
        service = VideoPlaybackService(db, stream_host)
        return await service.get_playback(current_user.id, video_id)
    except ReelpipeError:
        raise
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to fetch playback URL for video {video_id}: {e}", exc_info=True)
        raise _internal_error("Failed to fetch playback URL.")


@router.get("/{video_id}/download", response_model=DownloadResponse, summary="Get original file download URL",
            operation_id="get_video_download")
async def get_video_download(
    video_id: str,
    expires_in: int = Query(DOWNLOAD_URL_DEFAULT_TTL_SECONDS, ge=DOWNLOAD_URL_MIN_TTL_SECONDS,
                            le=DOWNLOAD_URL_MAX_TTL_SECONDS, description="Link lifetime in seconds"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    stream_host: StreamHostClient = Depends(get_stream_host),
):
    """Signed, time-limited link to the originally uploaded file

    Args:
        video_id (str): video id
        expires_in (int): lifetime of the link, 300-86400 seconds

    Returns:
        DownloadResponse: {download_url, expires_at}
    """
    try:
        service = VideoPlaybackService(db, stream_host)
        return await service.get_download(current_user.id, video_id, expires_in)
    except ReelpipeError:
        raise
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to issue download URL for video {video_id}: {e}", exc_info=True)
        raise _internal_error("Failed to generate download URL.")


@router.delete("/{video_id}", response_model=DeleteResponse, summary="Delete video", operation_id="delete_video")
async def delete_video(
    video_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    stream_host: StreamHostClient = Depends(get_stream_host),
):
    """Soft delete; the stream host asset is removed by the reconciliation pass"""
    try:
        service = VideoDeletionService(db, stream_host)
        await service.delete(current_user.id, video_id)
        return DeleteResponse(success=True)
    except ReelpipeError:
        raise
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to delete video {video_id}: {e}", exc_info=True)
        raise _internal_error("Failed to delete video.")
