from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from reelpipe.core.database import get_db
from reelpipe.core.exceptions import ReelpipeError
from reelpipe.schemas.webhook import StreamHostWebhook, WebhookResult
from reelpipe.services.stream_host import StreamHostClient, get_stream_host
from reelpipe.services.video_status import VideoStatusService

router = APIRouter()

import logging
logger = logging.getLogger(__name__)


@router.post("/stream-host", response_model=WebhookResult, summary="Stream host status webhook",
             operation_id="stream_host_webhook")
async def stream_host_webhook(
    payload: StreamHostWebhook,
    db: AsyncSession = Depends(get_db),
    stream_host: StreamHostClient = Depends(get_stream_host),
):
    """Apply a status change pushed by the stream host

    Unknown videos and payloads for another library are acknowledged with
    `success: false` so the stream host does not keep retrying them.

    Examples:
        POST /api/v1/webhooks/stream-host
        {"VideoLibraryId": 12345, "VideoGuid": "...", "Status": 3}
    """
    try:
        service = VideoStatusService(db, stream_host)
        result = await service.handle_webhook(payload.library_id, payload.video_guid, payload.status)
        return WebhookResult(**result)
    except ReelpipeError:
        raise
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to apply stream host webhook for {payload.video_guid}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process webhook.",
        )
