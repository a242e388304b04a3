from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from adreel.db.models import AdJobType


class HealthResponse(BaseModel):
    status: str = Field(default="ok", description="Health status indicator.")
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: Optional[str] = None
    storage_backend: Optional[str] = None


class EnvCheckResponse(BaseModel):
    ffmpeg: bool
    ffprobe: bool


class AdResponse(BaseModel):
    id: str
    title: str
    description: Optional[str]
    platform: str
    industry: Optional[str]
    hook_type: Optional[str]
    cta_type: Optional[str]
    source_url: str
    source_type: str
    original_owner: Optional[str]
    published: bool
    thumbnail: Optional[str]
    duration_sec: Optional[int]
    created_at: datetime
    tags: List[str] = Field(default_factory=list)


class AdListResponse(BaseModel):
    items: List[AdResponse]
    total: int
    page: int
    page_size: int


class AdCreateRequest(BaseModel):
    url: str = Field(..., json_schema_extra={"example": "https://www.youtube.com/shorts/abc123"})
    title: Optional[str] = None
    description: Optional[str] = None
    thumbnail: Optional[str] = None
    industry: Optional[str] = None
    hook_type: Optional[str] = None
    cta_type: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class PublishRequest(BaseModel):
    published: bool


class AdJobRequest(BaseModel):
    type: AdJobType = Field(default=AdJobType.REPOST)
    interval_min: int = Field(default=1440, ge=1, json_schema_extra={"example": 1440})


class AdJobResponse(BaseModel):
    id: str
    ad_id: str
    type: str
    interval_min: int
    active: bool
    last_run_at: Optional[datetime]


class AdJobStopResponse(BaseModel):
    ad_id: str
    deactivated: int


class UploadResponse(BaseModel):
    id: str
    storage_path: str
    filename: Optional[str]
    user_id: Optional[str]
    remote: bool
    processed: bool
    duration_sec: Optional[int]
    error: Optional[str]
    processed_at: Optional[datetime]
    created_at: datetime


class RemoteUploadRequest(BaseModel):
    url: str = Field(..., json_schema_extra={"example": "https://cdn.example.com/clip.mp4"})
    filename: Optional[str] = Field(default=None, json_schema_extra={"example": "clip.mp4"})


class RemoteUploadResponse(BaseModel):
    upload: UploadResponse
    warnings: List[str] = Field(default_factory=list)


class IngestRequest(BaseModel):
    sources: Optional[List[str]] = Field(default=None, description="Feed URLs; defaults to the configured sources.")
    max_items: Optional[int] = Field(default=None, ge=1, le=100)


class TaskAcceptedResponse(BaseModel):
    task: str
    job_id: Optional[str] = None
    status: str = Field(description="queued | completed")


__all__ = [
    "HealthResponse",
    "EnvCheckResponse",
    "AdResponse",
    "AdListResponse",
    "AdCreateRequest",
    "PublishRequest",
    "AdJobRequest",
    "AdJobResponse",
    "AdJobStopResponse",
    "UploadResponse",
    "RemoteUploadRequest",
    "RemoteUploadResponse",
    "IngestRequest",
    "TaskAcceptedResponse",
]
