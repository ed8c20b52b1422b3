"""Single and bulk video deletion"""

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reelpipe.core.config import settings
from reelpipe.core.exceptions import ErrorCode, NotFoundError, PermissionDeniedError, ValidationError
from reelpipe.models.project import Project
from reelpipe.models.video import Video
from reelpipe.schemas.video import BulkDeleteResponse, OperationWarning
from reelpipe.services.permissions import PermissionService
from reelpipe.services.stream_host import StreamHostClient

logger = logging.getLogger(__name__)


class VideoDeletionService:
    """Soft deletes videos and keeps project counters in step.

    Rows are only marked with deleted_at here; the reconciliation pass
    removes them (and any upstream asset left behind) after the grace period.
    """

    def __init__(self, db: AsyncSession, stream_host: StreamHostClient):
        self.db = db
        self.stream_host = stream_host
        self.permissions = PermissionService(db)

    async def delete(self, user_id: str, video_id: str) -> None:
        stmt = select(Video).where(Video.id == video_id, Video.deleted_at.is_(None))
        result = await self.db.execute(stmt)
        video = result.scalar_one_or_none()
        if not video:
            raise NotFoundError("Video not found")

        project = await self.permissions.get_project(video.project_id)
        membership = await self.permissions.get_membership(project.id, user_id)
        if not PermissionService.can_delete_video(video, project, user_id, membership):
            logger.warning(f"User {user_id} may not delete video {video_id}")
            raise PermissionDeniedError("You do not have permission to delete this video")

        video.deleted_at = datetime.now(timezone.utc)
        project.video_count = max(0, (project.video_count or 0) - 1)
        await self.db.commit()
        logger.info(f"Video {video_id} soft deleted by {user_id}")

    async def bulk_delete(self, user_id: str, video_ids: List[str]) -> BulkDeleteResponse:
        ids = list(dict.fromkeys(video_ids))
        if not ids or len(video_ids) > settings.bulk_delete_max_ids:
            raise ValidationError(f"Between 1 and {settings.bulk_delete_max_ids} video ids are required")

        stmt = select(Video).where(Video.id.in_(ids), Video.deleted_at.is_(None))
        result = await self.db.execute(stmt)
        videos = {video.id: video for video in result.scalars().all()}
        missing = [video_id for video_id in ids if video_id not in videos]
        if missing:
            logger.warning(f"Bulk delete rejected, unknown or deleted ids: {missing}")
            raise NotFoundError(f"Videos not found: {', '.join(missing)}", detail={"video_ids": missing})

        project_ids = {video.project_id for video in videos.values()}
        projects_result = await self.db.execute(select(Project).where(Project.id.in_(project_ids)))
        projects = {project.id: project for project in projects_result.scalars().all()}
        memberships = await self.permissions.memberships_for(user_id, project_ids)

        denied = [
            video.id for video in videos.values()
            if not PermissionService.can_delete_video(
                video, projects[video.project_id], user_id, memberships.get(video.project_id)
            )
        ]
        if denied:
            logger.warning(f"Bulk delete rejected for user {user_id}, no permission on: {denied}")
            raise PermissionDeniedError("You do not have permission to delete some of these videos",
                                        detail={"video_ids": denied})

        upstream_failures = []
        for video in videos.values():
            if video.external_video_id and not await self.stream_host.delete_video(video.external_video_id):
                upstream_failures.append(video.id)

        now = datetime.now(timezone.utc)
        removed_per_project = Counter()
        for video in videos.values():
            video.deleted_at = now
            removed_per_project[video.project_id] += 1
        for project_id, removed in removed_per_project.items():
            project = projects[project_id]
            project.video_count = max(0, (project.video_count or 0) - removed)

        await self.db.commit()
        logger.info(f"Bulk deleted {len(videos)} videos for user {user_id} ({len(upstream_failures)} upstream failures)")

        warnings = []
        if upstream_failures:
            warnings.append(OperationWarning(
                code=ErrorCode.PARTIAL_FAILURE.value,
                message="Some videos could not be removed from the stream host and will be cleaned up later",
                video_ids=upstream_failures,
            ))
        return BulkDeleteResponse(success=True, deleted_count=len(videos), warnings=warnings)
