"""Project access checks"""

import logging
from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reelpipe.core.exceptions import NotFoundError, PermissionDeniedError
from reelpipe.models.project import Project, ProjectMember
from reelpipe.models.video import Video

logger = logging.getLogger(__name__)


class PermissionService:
    """Owner / member checks against a project"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_project(self, project_id: str) -> Project:
        result = await self.db.execute(select(Project).where(Project.id == project_id))
        project = result.scalar_one_or_none()
        if not project:
            logger.warning(f"Project not found: {project_id}")
            raise NotFoundError("Project not found")
        return project

    async def get_membership(self, project_id: str, user_id: str) -> Optional[ProjectMember]:
        stmt = select(ProjectMember).where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user_id,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def memberships_for(self, user_id: str, project_ids: Iterable[str]) -> Dict[str, ProjectMember]:
        project_ids = list(set(project_ids))
        if not project_ids:
            return {}
        stmt = select(ProjectMember).where(
            ProjectMember.user_id == user_id,
            ProjectMember.project_id.in_(project_ids),
        )
        result = await self.db.execute(stmt)
        return {member.project_id: member for member in result.scalars().all()}

    async def require_view(self, project: Project, user_id: str) -> None:
        if project.owner_id == user_id:
            return
        if await self.get_membership(project.id, user_id) is None:
            logger.warning(f"User {user_id} has no access to project {project.id}")
            raise PermissionDeniedError("You do not have access to this project")

    async def require_upload(self, project: Project, user_id: str) -> None:
        if project.owner_id == user_id:
            return
        membership = await self.get_membership(project.id, user_id)
        if membership is None:
            logger.warning(f"User {user_id} is not a member of project {project.id}")
            raise PermissionDeniedError("You do not have access to this project")
        if not membership.can_upload:
            logger.warning(f"User {user_id} lacks upload permission on project {project.id}")
            raise PermissionDeniedError("You do not have permission to upload videos")

    @staticmethod
    def can_delete_video(video: Video, project: Project, user_id: str,
                         membership: Optional[ProjectMember]) -> bool:
        if video.uploaded_by == user_id or project.owner_id == user_id:
            return True
        return bool(membership and membership.can_delete)

    @staticmethod
    def can_edit_video(video: Video, project: Project, user_id: str,
                       membership: Optional[ProjectMember]) -> bool:
        if video.uploaded_by == user_id or project.owner_id == user_id:
            return True
        return bool(membership and membership.can_upload)
