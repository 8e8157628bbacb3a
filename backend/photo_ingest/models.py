from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text, func
from sqlalchemy.orm import declarative_base

from .storage import photo_path_at

Base = declarative_base()

JOB_PENDING = "pending"
JOB_PROCESSING = "processing"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"

JOB_STATUSES = (JOB_PENDING, JOB_PROCESSING, JOB_COMPLETED, JOB_FAILED)
JOB_TERMINAL_STATUSES = (JOB_COMPLETED, JOB_FAILED)

EVENT_UPLOAD = "upload"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Job(Base):
    __tablename__ = "jobs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    album_id = Column(Integer, nullable=False, index=True)
    original_filename = Column(String, nullable=False)
    temp_path = Column(String, nullable=False)
    status = Column(String, nullable=False, default=JOB_PENDING, index=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow)


class Photo(Base):
    __tablename__ = "photos"
    id = Column(Integer, primary_key=True, autoincrement=True)
    album_id = Column(Integer, nullable=False, index=True)
    filename = Column(String, nullable=False)
    width = Column(Integer, nullable=False)
    height = Column(Integer, nullable=False)
    size_bytes = Column(Integer, nullable=False)
    format = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def storage_path(self, base_dir: str) -> str:
        """Deterministic on-disk location, derived from the persisted created_at."""
        return photo_path_at(base_dir, self.album_id, self.id, self.format, self.created_at)


class ActivityEvent(Base):
    __tablename__ = "activity_events"
    id = Column(Integer, primary_key=True, autoincrement=True)
    event_type = Column(String, nullable=False)
    album_id = Column(Integer, nullable=True)
    photo_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
