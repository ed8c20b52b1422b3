from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_

from reelpipe.core.database import get_db
from reelpipe.core.exceptions import ReelpipeError
from reelpipe.core.security import get_current_user
from reelpipe.models.user import User
from reelpipe.models.project import Project, ProjectMember
from reelpipe.schemas.project import ProjectListResponse, ProjectSummary
from reelpipe.services.permissions import PermissionService

router = APIRouter()

import logging
logger = logging.getLogger(__name__)


@router.get("", response_model=ProjectListResponse, summary="List projects", operation_id="list_projects")
async def list_projects(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Projects the caller owns or is a member of, with their video counts"""
    try:
        member_of = select(ProjectMember.project_id).where(ProjectMember.user_id == current_user.id)
        stmt = select(Project).where(
            or_(Project.owner_id == current_user.id, Project.id.in_(member_of))
        ).order_by(Project.created_at.desc())
        result = await db.execute(stmt)
        projects = result.scalars().all()
        return ProjectListResponse(
            projects=[ProjectSummary.model_validate(project) for project in projects],
            total=len(projects),
        )
    except ReelpipeError:
        raise
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to list projects for user {current_user.id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list projects.",
        )


@router.get("/{project_id}", response_model=ProjectSummary, summary="Get project", operation_id="get_project")
async def get_project(
    project_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        permissions = PermissionService(db)
        project = await permissions.get_project(project_id)
        await permissions.require_view(project, current_user.id)
        return ProjectSummary.model_validate(project)
    except ReelpipeError:
        raise
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to load project {project_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load project.",
        )
