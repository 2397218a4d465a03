"""Tables for jobs, credits, the persisted work queue and audit records."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class ProfileModel(Base):
    """Per-owner credit ledger."""

    __tablename__ = "profiles"

    owner_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    video_credits_remaining: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class VideoModel(TimestampMixin, Base):
    """The Job row external callers poll."""

    __tablename__ = "videos"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="processing")
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    video_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    error_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processing_status_text: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("idx_videos_owner", "owner_id"),
        Index("idx_videos_status_created", "status", "created_at"),
    )


class PipelineTaskModel(Base):
    """Persisted queue entry for one detached pipeline run."""

    __tablename__ = "pipeline_tasks"

    job_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    state: Mapped[str] = mapped_column(String(20), nullable=False, default="queued")
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    enqueued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    heartbeat_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_pipeline_tasks_state", "state"),)


class GenerationDetailModel(Base):
    """Audit record written once when a job completes."""

    __tablename__ = "generation_details"

    video_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    clip_data: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    voiceover_script: Mapped[str] = mapped_column(Text, nullable=False)
    voiceover_url: Mapped[str] = mapped_column(Text, nullable=False)
    music_url: Mapped[str] = mapped_column(Text, nullable=False)
    music_source: Mapped[str] = mapped_column(String(20), nullable=False)
    caption_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    settings_snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    processing_started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    processing_completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total_processing_time_seconds: Mapped[int] = mapped_column(Integer, nullable=False)


class OwnerSettingsModel(Base):
    __tablename__ = "owner_settings"

    owner_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)


class CustomMusicModel(Base):
    __tablename__ = "custom_music_uploads"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    filename: Mapped[str] = mapped_column(String(500), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    storage_id: Mapped[str] = mapped_column(String(500), nullable=False)
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    file_size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    format: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (Index("idx_custom_music_owner", "owner_id"),)


class MusicLibraryModel(Base):
    __tablename__ = "music_library"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    storage_id: Mapped[str] = mapped_column(String(500), nullable=False)
    mood: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    duration_seconds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
