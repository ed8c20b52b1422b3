"""Read side for video lists and details"""

import logging
from typing import Optional

from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from reelpipe.core.constants import VideoStatus
from reelpipe.core.exceptions import NotFoundError, ValidationError
from reelpipe.models.video import Video
from reelpipe.schemas.video import PaginatedVideoResponse, VideoDetail, VideoListItem
from reelpipe.services.permissions import PermissionService

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class VideoQueryService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.permissions = PermissionService(db)

    async def list_videos(
        self,
        user_id: str,
        project_id: str,
        status: Optional[VideoStatus] = None,
        limit: int = 20,
        cursor: Optional[str] = None,
    ) -> PaginatedVideoResponse:
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        project = await self.permissions.get_project(project_id)
        await self.permissions.require_view(project, user_id)

        stmt = select(Video).where(
            Video.project_id == project_id,
            Video.deleted_at.is_(None),
            Video.is_current_version.is_(True),
        )
        if status is not None:
            stmt = stmt.where(Video.status == status.value)

        if cursor:
            anchor = await self.db.get(Video, cursor)
            if anchor is None or anchor.project_id != project_id:
                raise ValidationError("Invalid cursor")
            stmt = stmt.where(
                or_(
                    Video.created_at < anchor.created_at,
                    and_(Video.created_at == anchor.created_at, Video.id < anchor.id),
                )
            )

        stmt = stmt.order_by(Video.created_at.desc(), Video.id.desc()).limit(limit + 1)
        result = await self.db.execute(stmt)
        rows = list(result.scalars().all())

        next_cursor = None
        if len(rows) > limit:
            rows = rows[:limit]
            next_cursor = rows[-1].id

        return PaginatedVideoResponse(
            videos=[VideoListItem.model_validate(row) for row in rows],
            next_cursor=next_cursor,
        )

    async def get_video(self, user_id: str, video_id: str) -> VideoDetail:
        stmt = select(Video).where(Video.id == video_id, Video.deleted_at.is_(None))
        result = await self.db.execute(stmt)
        video = result.scalar_one_or_none()
        if not video:
            raise NotFoundError("Video not found")

        if video.uploaded_by != user_id:
            project = await self.permissions.get_project(video.project_id)
            await self.permissions.require_view(project, user_id)

        return VideoDetail.model_validate(video)
