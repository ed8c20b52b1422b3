"""
Periodic cleanup of soft-deleted videos

Runs the reconciliation pass from Celery beat: rows soft-deleted longer
than `reconcile_grace_hours` ago are hard-deleted together with their
stream host assets.
"""

import asyncio
import logging
from datetime import datetime

from reelpipe.core.celery import celery_app
from reelpipe.core.database import AsyncSessionLocal
from reelpipe.services.reconciliation import reconcile_deleted_videos
from reelpipe.services.stream_host import StreamHostClient

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run a coroutine from synchronous Celery task code"""
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    if loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


async def _reconcile():
    async with AsyncSessionLocal() as db:
        return await reconcile_deleted_videos(db, StreamHostClient())


@celery_app.task(
    name="reconcile_deleted_videos",
    bind=True,
    max_retries=3,
    default_retry_delay=300,  # retry after 5 minutes
)
def reconcile_deleted_videos_task(self):
    try:
        logger.info("Starting reconciliation of deleted videos")
        stats = run_async(_reconcile())
        return {
            'status': 'success',
            'timestamp': datetime.utcnow().isoformat(),
            **stats,
        }
    except Exception as exc:
        logger.error(f"Reconciliation failed: {exc}", exc_info=True)
        if self.request.retries < self.max_retries:
            logger.info(f"Retrying in {self.default_retry_delay}s (attempt {self.request.retries + 1})")
            raise self.retry(exc=exc)
        raise
