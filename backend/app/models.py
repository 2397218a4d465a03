"""Request and response bodies of the HTTP API (camelCase on the wire)."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from models.job import JobStatus


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorDetail(ApiModel):
    code: str
    message: str


class VideoCreateResponse(ApiModel):
    ok: bool = True
    job_id: str


class VideoStatusResponse(ApiModel):
    """Polled by clients until ``status`` leaves processing."""

    status: JobStatus
    processing_status_text: str | None = None
    video_url: str | None = None
    thumbnail_url: str | None = None
    duration_seconds: int | None = None
    error_text: str | None = None


class CustomMusicResponse(ApiModel):
    id: str
    title: str
    url: str
    duration_seconds: int
    file_size_bytes: int
    format: str
    created_at: datetime | None = None


class CaptionPreviewRequest(ApiModel):
    video_url: str
    language: str | None = None


class CaptionSegment(ApiModel):
    start: float
    end: float
    text: str


class CaptionPreviewResponse(ApiModel):
    segments: list[CaptionSegment]
