from fastapi import APIRouter
from .projects import router as projects_router
from .video_upload import router as video_upload_router
from .videos import router as videos_router
from .webhooks import router as webhooks_router

api_router = APIRouter()
api_router.include_router(projects_router, prefix="/projects", tags=["projects"])
api_router.include_router(video_upload_router, prefix="/videos", tags=["videos"])
api_router.include_router(videos_router, prefix="/videos", tags=["videos"])
api_router.include_router(webhooks_router, prefix="/webhooks", tags=["webhooks"])
