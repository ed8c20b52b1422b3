from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, List
from datetime import datetime

from reelpipe.core.constants import (
    VideoStatus, MAX_TITLE_LENGTH, MAX_DESCRIPTION_LENGTH, MAX_TAGS, MAX_TAG_LENGTH,
)
from reelpipe.core.config import settings


class CreateUploadRequest(BaseModel):
    project_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    tags: List[str] = Field(default_factory=list, max_length=MAX_TAGS)
    file_name: str = Field(..., min_length=1)
    file_size: int = Field(..., gt=0)
    mime_type: str = Field(..., min_length=1)
    parent_video_id: Optional[str] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value

    @field_validator("tags")
    @classmethod
    def check_tags(cls, value: List[str]) -> List[str]:
        for tag in value:
            if len(tag) > MAX_TAG_LENGTH:
                raise ValueError(f"tags must be at most {MAX_TAG_LENGTH} characters")
        return value


class UploadVideoSummary(BaseModel):
    id: str
    external_id: str
    status: VideoStatus = VideoStatus.UPLOADING


class UploadHeaders(BaseModel):
    auth_signature: str
    auth_expire: int  # unix seconds
    video_id: str
    library_id: str


class UploadMetadata(BaseModel):
    mime_type: str
    title: str


class UploadDestination(BaseModel):
    endpoint: str
    headers: UploadHeaders
    metadata: UploadMetadata


class CreateUploadResponse(BaseModel):
    video: UploadVideoSummary
    upload: UploadDestination


class VideoListItem(BaseModel):
    id: str
    project_id: str
    uploaded_by: str
    external_video_id: Optional[str] = None
    title: str
    thumbnail_url: Optional[str] = None
    duration: Optional[float] = None
    status: VideoStatus
    view_count: int = 0
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class VideoDetail(VideoListItem):
    external_library_id: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    original_file_name: str
    file_size: int
    mime_type: str
    streaming_url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    fps: Optional[float] = None
    processing_progress: Optional[int] = Field(None, ge=0, le=100)
    error_message: Optional[str] = None
    comment_count: int = 0
    version_number: int = 1
    parent_video_id: Optional[str] = None
    is_current_version: bool = True
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


class PaginatedVideoResponse(BaseModel):
    videos: List[VideoListItem]
    next_cursor: Optional[str] = None


class ProcessingStatusResponse(BaseModel):
    status: VideoStatus
    progress: Optional[int] = Field(None, ge=0, le=100)
    error_message: Optional[str] = None
    resolution: Optional[str] = None
    duration: Optional[float] = None


class BulkDeleteRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1, max_length=settings.bulk_delete_max_ids)

    @field_validator("ids")
    @classmethod
    def check_ids(cls, value: List[str]) -> List[str]:
        if any(not video_id for video_id in value):
            raise ValueError("video ids must be non-empty strings")
        return value


class OperationWarning(BaseModel):
    code: str
    message: str
    video_ids: List[str] = Field(default_factory=list)


class BulkDeleteResponse(BaseModel):
    success: bool = True
    deleted_count: int
    warnings: List[OperationWarning] = Field(default_factory=list)


class DeleteResponse(BaseModel):
    success: bool = True


class UpdateVideoRequest(BaseModel):
    """Partial metadata update; at least one field must be given"""
    title: Optional[str] = Field(None, min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    tags: Optional[List[str]] = Field(None, max_length=MAX_TAGS)

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value

    @field_validator("tags")
    @classmethod
    def check_tags(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        for tag in value or []:
            if len(tag) > MAX_TAG_LENGTH:
                raise ValueError(f"tags must be at most {MAX_TAG_LENGTH} characters")
        return value

    @model_validator(mode="after")
    def require_a_field(self):
        if self.title is None and self.description is None and self.tags is None:
            raise ValueError("At least one field must be provided")
        return self


class PlaybackResponse(BaseModel):
    playback_url: str
    thumbnail_url: Optional[str] = None


class DownloadResponse(BaseModel):
    download_url: str
    expires_at: datetime
