"""Title, description and tag edits"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reelpipe.core.exceptions import NotFoundError, PermissionDeniedError
from reelpipe.models.video import Video
from reelpipe.schemas.video import UpdateVideoRequest, VideoDetail
from reelpipe.services.permissions import PermissionService

logger = logging.getLogger(__name__)


class VideoMetadataService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.permissions = PermissionService(db)

    async def update(self, user_id: str, video_id: str, request: UpdateVideoRequest) -> VideoDetail:
        """Apply the fields present in `request`; the uploader, the project owner
        and members who may upload can edit"""
        stmt = select(Video).where(Video.id == video_id, Video.deleted_at.is_(None))
        result = await self.db.execute(stmt)
        video = result.scalar_one_or_none()
        if not video:
            raise NotFoundError("Video not found")

        project = await self.permissions.get_project(video.project_id)
        membership = await self.permissions.get_membership(project.id, user_id)
        if not self.permissions.can_edit_video(video, project, user_id, membership):
            logger.warning(f"User {user_id} may not edit video {video_id}")
            raise PermissionDeniedError("You do not have permission to update this video")

        changes = request.model_dump(exclude_none=True)
        for field, value in changes.items():
            setattr(video, field, value)

        await self.db.commit()
        await self.db.refresh(video)
        logger.info(f"Video {video_id} metadata updated: {sorted(changes)}")
        return VideoDetail.model_validate(video)
