from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from reelpipe.core.database import get_db
from reelpipe.core.exceptions import ReelpipeError
from reelpipe.core.security import get_current_user
from reelpipe.models.user import User
from reelpipe.schemas.video import CreateUploadRequest, CreateUploadResponse
from reelpipe.services.stream_host import StreamHostClient, get_stream_host
from reelpipe.services.upload_credentials import UploadCredentialIssuer

router = APIRouter()

import logging
logger = logging.getLogger(__name__)


@router.post(
    "/uploads",
    response_model=CreateUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Issue an upload credential",
    operation_id="create_video_upload",
)
async def create_upload(
    request: CreateUploadRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    stream_host: StreamHostClient = Depends(get_stream_host),
):
    """Create a pending video and a signed, single-use upload destination

    The returned credential is scoped to exactly one stream host video id
    and expires after the configured TTL. The client pushes the file to
    `upload.endpoint` with the TUS protocol, sending every entry of
    `upload.headers` on each request.

    Args:
        request (CreateUploadRequest): project, title and file description
        current_user (User): authenticated caller
        db (AsyncSession): database session
        stream_host (StreamHostClient): stream host API client

    Returns:
        CreateUploadResponse: {video: {id, external_id, status}, upload: {endpoint, headers, metadata}}

    Examples:
        POST /api/v1/videos/uploads
        {"project_id": "...", "title": "Cut 3", "file_name": "cut3.mp4", "file_size": 1048576, "mime_type": "video/mp4"}
    """
    try:
        issuer = UploadCredentialIssuer(db, stream_host)
        return await issuer.issue(current_user.id, request)
    except ReelpipeError:
        raise
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Unexpected error issuing upload for user {current_user.id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to initialize video upload.",
        )
