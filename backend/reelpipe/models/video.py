import uuid
from sqlalchemy import Column, Integer, BigInteger, String, DateTime, Text, ForeignKey, Boolean, Float, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from reelpipe.core.database import Base

class Video(Base):
    __tablename__ = "videos"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
    uploaded_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    external_video_id = Column(String(100), index=True)  # stream host video guid
    external_library_id = Column(String(100))
    title = Column(String(500), nullable=False)
    description = Column(Text)
    tags = Column(JSON, default=list)
    original_file_name = Column(String(500), nullable=False)
    file_size = Column(BigInteger, nullable=False)  # bytes
    mime_type = Column(String(100), nullable=False)
    thumbnail_url = Column(String(1000))
    streaming_url = Column(String(1000))
    duration = Column(Float)  # seconds
    width = Column(Integer)
    height = Column(Integer)
    fps = Column(Float)
    status = Column(String(20), default="uploading", nullable=False, index=True)  # uploading, processing, ready, failed
    processing_progress = Column(Integer)  # 0-100, only while processing
    error_message = Column(Text)
    view_count = Column(Integer, default=0, nullable=False)
    comment_count = Column(Integer, default=0, nullable=False)

    # Versioning: parent_video_id points at the lineage root
    version_number = Column(Integer, default=1, nullable=False)
    parent_video_id = Column(String(36), ForeignKey("videos.id"))
    is_current_version = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), index=True)

    # Relationships
    project = relationship("Project", back_populates="videos")

    @property
    def lineage_root_id(self) -> str:
        return self.parent_video_id or self.id
