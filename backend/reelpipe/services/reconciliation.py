"""Hard deletion of soft-deleted videos after the grace period"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reelpipe.core.config import settings
from reelpipe.models.video import Video
from reelpipe.services.stream_host import StreamHostClient

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def reconcile_deleted_videos(
    db: AsyncSession,
    stream_host: StreamHostClient,
    now: Optional[datetime] = None,
    grace: Optional[timedelta] = None,
) -> Dict[str, int]:
    """Remove rows soft-deleted longer than `grace` ago, plus their upstream assets.

    A row whose upstream asset cannot be deleted is kept for the next pass.
    A lineage root still referenced by live versions is kept as a tombstone.
    """
    now = now or datetime.now(timezone.utc)
    grace = grace if grace is not None else timedelta(hours=settings.reconcile_grace_hours)
    cutoff = now - grace

    result = await db.execute(select(Video).where(Video.deleted_at.is_not(None)))
    candidates = [video for video in result.scalars().all() if _as_utc(video.deleted_at) <= cutoff]

    stats = {"examined": len(candidates), "purged": 0, "upstream_failed": 0, "kept_as_root": 0}
    if not candidates:
        return stats

    candidate_ids = [video.id for video in candidates]
    referenced = await db.execute(
        select(Video.parent_video_id).where(
            Video.parent_video_id.in_(candidate_ids),
            Video.deleted_at.is_(None),
        )
    )
    live_roots = set(referenced.scalars().all())

    # Later versions go before their lineage root
    for video in sorted(candidates, key=lambda v: v.parent_video_id is None):
        if video.id in live_roots:
            stats["kept_as_root"] += 1
            continue
        if video.external_video_id and not await stream_host.delete_video(video.external_video_id):
            logger.warning(f"Upstream delete failed for {video.id}; retrying next pass")
            stats["upstream_failed"] += 1
            continue
        await db.delete(video)
        await db.flush()
        stats["purged"] += 1

    await db.commit()
    logger.info(f"Reconciliation finished: {stats}")
    return stats
