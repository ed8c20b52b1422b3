from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import datetime

class ProjectSummary(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    owner_id: str
    video_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class ProjectListResponse(BaseModel):
    projects: List[ProjectSummary]
    total: int
