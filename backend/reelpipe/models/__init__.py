from .user import User
from .project import Project, ProjectMember
from .video import Video

__all__ = [
    "User",
    "Project",
    "ProjectMember",
    "Video",
]
