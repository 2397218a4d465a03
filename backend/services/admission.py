"""Admission gate: validate a generation request, take a credit, queue the job."""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
import uuid
from pathlib import Path
from typing import Any, Callable, Sequence

from models.listing import GenerationRequest, PhotoGroup, PhotoGroupMode, PhotoImage, PropertyDetails
from services import store
from services.errors import RequestValidationError

logger = logging.getLogger(__name__)

IMAGES_PER_MODE = {PhotoGroupMode.SINGLE: 1, PhotoGroupMode.KEYFRAME_PAIR: 2}
REQUIRED_DETAILS = ("title", "price", "location")

_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9._-]+")
_JOB_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def group_images(modes: Sequence[str], images: Sequence[PhotoImage]) -> tuple[PhotoGroup, ...]:
    """Split a flat, group-ordered image list into photo groups by mode."""
    groups = []
    cursor = 0
    for raw_mode in modes:
        try:
            mode = PhotoGroupMode(raw_mode)
        except ValueError as exc:
            raise RequestValidationError(f"Unknown photo group mode: {raw_mode!r}") from exc
        count = IMAGES_PER_MODE[mode]
        chunk = tuple(images[cursor:cursor + count])
        if len(chunk) != count:
            raise RequestValidationError(f"Photo group {len(groups) + 1} ({mode.value}) needs {count} image(s)")
        groups.append(PhotoGroup(mode=mode, images=chunk))
        cursor += count
    if cursor != len(images):
        raise RequestValidationError(f"{len(images) - cursor} image(s) do not belong to any photo group")
    return tuple(groups)


def validate_request(request: GenerationRequest) -> None:
    if not _JOB_ID.match(request.job_id):
        raise RequestValidationError(f"Invalid job id: {request.job_id!r}")
    missing = [name for name in REQUIRED_DETAILS if not getattr(request.details, name)]
    if missing:
        raise RequestValidationError(f"Missing required field(s): {', '.join(missing)}")
    if not request.photo_groups:
        raise RequestValidationError("At least one photo group is required")
    for index, group in enumerate(request.photo_groups, start=1):
        if not group.images:
            raise RequestValidationError(f"Photo group {index} is empty")
        if len(group.images) != IMAGES_PER_MODE[group.mode]:
            raise RequestValidationError(
                f"Photo group {index} ({group.mode.value}) needs {IMAGES_PER_MODE[group.mode]} image(s)"
            )
        for image in group.images:
            if not image.data:
                raise RequestValidationError(f"Image {image.filename!r} is empty")


def _safe_name(filename: str) -> str:
    return _UNSAFE_FILENAME.sub("_", Path(filename).name) or "photo"


def spool_request(request: GenerationRequest, spool_dir: Path) -> dict[str, Any]:
    """Write the photos to disk and return the task payload that points at them."""
    job_dir = spool_dir / f"{request.job_id}-{uuid.uuid4().hex[:8]}"
    job_dir.mkdir(parents=True, exist_ok=True)
    groups = []
    for slot, group in enumerate(request.photo_groups):
        images = []
        for position, image in enumerate(group.images):
            path = job_dir / f"{slot:02d}_{position}_{_safe_name(image.filename)}"
            path.write_bytes(image.data)
            images.append({"filename": image.filename, "content_type": image.content_type, "path": str(path)})
        groups.append({"mode": group.mode.value, "images": images})
    return {
        "job_id": request.job_id,
        "spool_dir": str(job_dir),
        "owner_id": request.owner_id,
        "details": request.details.model_dump(),
        "photo_groups": groups,
    }


def load_request(payload: dict[str, Any]) -> GenerationRequest:
    """Rebuild the request from a task payload written by ``spool_request``."""
    groups = tuple(
        PhotoGroup(
            mode=PhotoGroupMode(group["mode"]),
            images=tuple(
                PhotoImage(
                    filename=image["filename"],
                    content_type=image["content_type"],
                    data=Path(image["path"]).read_bytes(),
                )
                for image in group["images"]
            ),
        )
        for group in payload["photo_groups"]
    )
    return GenerationRequest(
        job_id=payload["job_id"],
        owner_id=payload["owner_id"],
        details=PropertyDetails.model_validate(payload["details"]),
        photo_groups=groups,
    )


def remove_spool(payload: dict[str, Any]) -> None:
    if payload.get("spool_dir"):
        shutil.rmtree(payload["spool_dir"], ignore_errors=True)


class AdmissionGate:
    """Synchronous front half of a generation request; everything after runs on the worker."""

    def __init__(self, spool_dir: Path, enqueue: Callable[[str], None]) -> None:
        self.spool_dir = Path(spool_dir)
        self.enqueue = enqueue

    def persist(self, request: GenerationRequest) -> None:
        """Spool photos, spend one credit and create the job and its task together."""
        validate_request(request)
        payload = spool_request(request, self.spool_dir)
        try:
            store.admit_job(
                job_id=request.job_id,
                owner_id=request.owner_id,
                title=request.details.title,
                task_payload=payload,
            )
        except Exception:
            remove_spool(payload)
            raise

    async def admit(self, request: GenerationRequest) -> str:
        await asyncio.to_thread(self.persist, request)
        self.enqueue(request.job_id)
        logger.info("[%s] queued (%d photo groups)", request.job_id, len(request.photo_groups))
        return request.job_id


def new_job_id() -> str:
    return str(uuid.uuid4())
