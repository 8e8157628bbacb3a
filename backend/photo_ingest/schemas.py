"""
Pydantic schemas for request/response validation
"""
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

# ===== Common Schemas =====

class HealthResponse(BaseModel):
    status: str
    service: str

# ===== Upload Schemas =====

class UploadItem(BaseModel):
    filename: str
    job_id: Optional[int] = None
    error: Optional[str] = None

class UploadResponse(BaseModel):
    album_id: int
    accepted: int
    rejected: int
    items: List[UploadItem]

# ===== Job Schemas =====

class JobStatusResponse(BaseModel):
    job_id: int
    album_id: int
    filename: str
    status: str
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class AlbumUploadStatus(BaseModel):
    album_id: int
    pending: int
    processing: int
    completed: int
    failed: int
    total: int
    percent_complete: int
    done: bool
