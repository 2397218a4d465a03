"""Durable job store: Job rows, the credit ledger, the work queue and audit records.

Every status write is conditional on ``status = 'processing'`` so a job that
already reached a terminal state is never regressed.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from db.engine import get_db_session
from db.tables import (
    CustomMusicModel,
    GenerationDetailModel,
    MusicLibraryModel,
    OwnerSettingsModel,
    PipelineTaskModel,
    ProfileModel,
    VideoModel,
)
from models.job import JobStatus
from models.listing import OwnerSettings
from services.errors import DuplicateJobError, InsufficientCreditsError

logger = logging.getLogger(__name__)

TASK_QUEUED = "queued"
TASK_RUNNING = "running"
TASK_DONE = "done"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class JobSnapshot:
    """Read-only view of a Job row."""

    id: str
    owner_id: str
    status: JobStatus
    title: str
    video_url: str | None
    thumbnail_url: str | None
    duration_seconds: int | None
    error_text: str | None
    processing_status_text: str | None
    created_at: datetime | None

    @classmethod
    def from_row(cls, row: VideoModel) -> "JobSnapshot":
        return cls(
            id=row.id,
            owner_id=row.owner_id,
            status=JobStatus(row.status),
            title=row.title,
            video_url=row.video_url,
            thumbnail_url=row.thumbnail_url,
            duration_seconds=row.duration_seconds,
            error_text=row.error_text,
            processing_status_text=row.processing_status_text,
            created_at=row.created_at,
        )


# --- Credit ledger ---


def set_credits(owner_id: str, credits: int) -> None:
    """Create or overwrite an owner's credit balance."""
    with get_db_session() as session:
        profile = session.get(ProfileModel, owner_id)
        if profile is None:
            session.add(ProfileModel(owner_id=owner_id, video_credits_remaining=credits))
        else:
            profile.video_credits_remaining = credits


def get_credits(owner_id: str) -> int:
    with get_db_session() as session:
        profile = session.get(ProfileModel, owner_id)
        return profile.video_credits_remaining if profile else 0


# --- Job lifecycle ---


def admit_job(
    *,
    job_id: str,
    owner_id: str,
    title: str,
    task_payload: dict[str, Any],
) -> None:
    """
    Spend one credit, create the Job row and queue its pipeline task atomically.

    The credit is taken with a single conditional UPDATE, so two concurrent
    admissions racing for the last credit cannot both succeed. Any failure
    after the decrement rolls the whole transaction back.
    """
    with get_db_session() as session:
        if session.get(VideoModel, job_id) is not None:
            raise DuplicateJobError(f"Job {job_id} already exists")

        profile = session.get(ProfileModel, owner_id)
        if profile is None or profile.video_credits_remaining <= 0:
            raise InsufficientCreditsError("No video credits remaining")

        result = session.execute(
            update(ProfileModel)
            .where(
                ProfileModel.owner_id == owner_id,
                ProfileModel.video_credits_remaining > 0,
            )
            .values(video_credits_remaining=ProfileModel.video_credits_remaining - 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InsufficientCreditsError("No video credits remaining")

        now = utcnow()
        session.add(
            VideoModel(
                id=job_id,
                owner_id=owner_id,
                status=JobStatus.PROCESSING.value,
                title=title,
                processing_status_text="Queued",
                created_at=now,
                updated_at=now,
            )
        )
        session.add(
            PipelineTaskModel(
                job_id=job_id,
                payload=task_payload,
                state=TASK_QUEUED,
                enqueued_at=now,
            )
        )
        try:
            session.flush()
        except IntegrityError as exc:
            raise DuplicateJobError(f"Job {job_id} already exists") from exc

    logger.info("[%s] admitted for owner=%s", job_id, owner_id)


def get_job(job_id: str) -> JobSnapshot | None:
    with get_db_session() as session:
        row = session.get(VideoModel, job_id)
        return JobSnapshot.from_row(row) if row else None


def _update_processing(job_id: str, **values: Any) -> bool:
    values["updated_at"] = utcnow()
    with get_db_session() as session:
        result = session.execute(
            update(VideoModel)
            .where(
                VideoModel.id == job_id,
                VideoModel.status == JobStatus.PROCESSING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


def update_progress(
    job_id: str,
    status_text: str,
    *,
    video_url: str | None = None,
    duration_seconds: int | None = None,
) -> bool:
    """Record a stage boundary; returns False if the job is no longer processing."""
    values: dict[str, Any] = {"processing_status_text": status_text}
    if video_url is not None:
        values["video_url"] = video_url
    if duration_seconds is not None:
        values["duration_seconds"] = duration_seconds
    updated = _update_processing(job_id, **values)
    if not updated:
        logger.warning("[%s] progress write ignored (job not processing): %s", job_id, status_text)
    return updated


def complete_job(
    job_id: str,
    *,
    video_url: str,
    duration_seconds: int,
    thumbnail_url: str | None = None,
) -> bool:
    updated = _update_processing(
        job_id,
        status=JobStatus.COMPLETED.value,
        video_url=video_url,
        thumbnail_url=thumbnail_url,
        duration_seconds=duration_seconds,
        processing_status_text="Completed",
        error_text=None,
    )
    if not updated:
        logger.warning("[%s] completion ignored (job not processing)", job_id)
    return updated


def fail_job(job_id: str, error_text: str) -> bool:
    """Mark a processing job failed; any interim video URL is withdrawn."""
    updated = _update_processing(
        job_id,
        status=JobStatus.FAILED.value,
        error_text=error_text,
        video_url=None,
        processing_status_text="Failed",
    )
    if not updated:
        logger.warning("[%s] failure write ignored (job not processing): %s", job_id, error_text)
    return updated


def fail_stale_jobs(heartbeat_before: datetime, error_text: str) -> list[str]:
    """
    Fail jobs whose running task has not reported since ``heartbeat_before``.

    Tasks still waiting in the queue are never stale. Each failed job's task
    is closed so it cannot be claimed afterwards.
    """
    last_seen = func.coalesce(PipelineTaskModel.heartbeat_at, PipelineTaskModel.started_at)
    with get_db_session() as session:
        stale_ids = list(
            session.scalars(
                select(PipelineTaskModel.job_id)
                .join(VideoModel, VideoModel.id == PipelineTaskModel.job_id)
                .where(
                    PipelineTaskModel.state == TASK_RUNNING,
                    VideoModel.status == JobStatus.PROCESSING.value,
                    last_seen < heartbeat_before,
                )
            )
        )
    failed = []
    for job_id in stale_ids:
        if fail_job(job_id, error_text):
            failed.append(job_id)
        finish_task(job_id)
    return failed


# --- Work queue ---


def claim_task(job_id: str) -> dict[str, Any] | None:
    """
    Move a task from queued to running; returns its payload, or None if not claimable.

    A queued task whose job is no longer processing is closed instead of claimed.
    """
    now = utcnow()
    with get_db_session() as session:
        job_is_processing = (
            select(VideoModel.id)
            .where(VideoModel.id == job_id, VideoModel.status == JobStatus.PROCESSING.value)
            .exists()
        )
        result = session.execute(
            update(PipelineTaskModel)
            .where(
                PipelineTaskModel.job_id == job_id,
                PipelineTaskModel.state == TASK_QUEUED,
                job_is_processing,
            )
            .values(
                state=TASK_RUNNING,
                attempts=PipelineTaskModel.attempts + 1,
                started_at=now,
                heartbeat_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            closed = session.execute(
                update(PipelineTaskModel)
                .where(
                    PipelineTaskModel.job_id == job_id,
                    PipelineTaskModel.state == TASK_QUEUED,
                    ~job_is_processing,
                )
                .values(state=TASK_DONE, finished_at=now)
                .execution_options(synchronize_session=False)
            )
            if closed.rowcount:
                logger.info("[%s] job already finished; closed its queued task", job_id)
            return None
        task = session.get(PipelineTaskModel, job_id)
        return dict(task.payload)


def heartbeat_task(job_id: str) -> None:
    with get_db_session() as session:
        session.execute(
            update(PipelineTaskModel)
            .where(PipelineTaskModel.job_id == job_id, PipelineTaskModel.state == TASK_RUNNING)
            .values(heartbeat_at=utcnow())
            .execution_options(synchronize_session=False)
        )


def finish_task(job_id: str) -> None:
    with get_db_session() as session:
        session.execute(
            update(PipelineTaskModel)
            .where(PipelineTaskModel.job_id == job_id)
            .values(state=TASK_DONE, finished_at=utcnow())
            .execution_options(synchronize_session=False)
        )


def get_task_state(job_id: str) -> str | None:
    with get_db_session() as session:
        task = session.get(PipelineTaskModel, job_id)
        return task.state if task else None


def queued_task_ids() -> list[str]:
    with get_db_session() as session:
        return list(
            session.scalars(
                select(PipelineTaskModel.job_id)
                .where(PipelineTaskModel.state == TASK_QUEUED)
                .order_by(PipelineTaskModel.enqueued_at)
            )
        )


def abandon_running_tasks(error_text: str) -> list[str]:
    """Close out tasks left running by a previous process and fail their jobs."""
    with get_db_session() as session:
        running = list(
            session.scalars(
                select(PipelineTaskModel.job_id).where(PipelineTaskModel.state == TASK_RUNNING)
            )
        )
    for job_id in running:
        fail_job(job_id, error_text)
        finish_task(job_id)
    return running


# --- Audit record ---


def save_generation_details(
    job_id: str,
    *,
    clip_data: list[dict[str, Any]],
    voiceover_script: str,
    voiceover_url: str,
    music_url: str,
    music_source: str,
    caption_data: dict[str, Any],
    settings_snapshot: dict[str, Any],
    started_at: datetime,
    completed_at: datetime,
) -> None:
    with get_db_session() as session:
        session.add(
            GenerationDetailModel(
                video_id=job_id,
                clip_data=clip_data,
                voiceover_script=voiceover_script,
                voiceover_url=voiceover_url,
                music_url=music_url,
                music_source=music_source,
                caption_data=caption_data,
                settings_snapshot=settings_snapshot,
                processing_started_at=started_at,
                processing_completed_at=completed_at,
                total_processing_time_seconds=int((completed_at - started_at).total_seconds()),
            )
        )


def get_generation_details(job_id: str) -> GenerationDetailModel | None:
    with get_db_session() as session:
        return session.get(GenerationDetailModel, job_id)


# --- Owner settings and music ---


def get_owner_settings(owner_id: str) -> OwnerSettings:
    """Saved preferences, or the defaults when the owner never saved any."""
    with get_db_session() as session:
        row = session.get(OwnerSettingsModel, owner_id)
        return OwnerSettings.model_validate(row.settings) if row else OwnerSettings()


def save_owner_settings(owner_id: str, settings: OwnerSettings) -> None:
    data = settings.model_dump(mode="json")
    with get_db_session() as session:
        row = session.get(OwnerSettingsModel, owner_id)
        if row is None:
            session.add(OwnerSettingsModel(owner_id=owner_id, settings=data))
        else:
            row.settings = data


def get_custom_music(owner_id: str, music_id: str | None) -> CustomMusicModel | None:
    if not music_id:
        return None
    with get_db_session() as session:
        return session.scalar(
            select(CustomMusicModel).where(
                CustomMusicModel.id == music_id,
                CustomMusicModel.owner_id == owner_id,
            )
        )


def add_custom_music(
    *,
    owner_id: str,
    filename: str,
    url: str,
    storage_id: str,
    duration_seconds: int,
    file_size_bytes: int,
    format: str,
    title: str,
) -> CustomMusicModel:
    row = CustomMusicModel(
        id=uuid.uuid4().hex,
        owner_id=owner_id,
        filename=filename,
        url=url,
        storage_id=storage_id,
        duration_seconds=duration_seconds,
        file_size_bytes=file_size_bytes,
        format=format,
        title=title,
        created_at=utcnow(),
    )
    with get_db_session() as session:
        session.add(row)
    return row


def first_library_track() -> MusicLibraryModel | None:
    """First active library track in display order."""
    with get_db_session() as session:
        return session.scalar(
            select(MusicLibraryModel)
            .where(MusicLibraryModel.active.is_(True))
            .order_by(MusicLibraryModel.sort_order, MusicLibraryModel.title)
            .limit(1)
        )


def add_library_track(
    *,
    title: str,
    url: str,
    storage_id: str,
    mood: str | None = None,
    active: bool = True,
    sort_order: int = 0,
) -> MusicLibraryModel:
    row = MusicLibraryModel(
        id=uuid.uuid4().hex,
        title=title,
        url=url,
        storage_id=storage_id,
        mood=mood,
        active=active,
        sort_order=sort_order,
    )
    with get_db_session() as session:
        session.add(row)
    return row
