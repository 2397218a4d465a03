"""Video generation API: submit a listing, poll its job."""

import json
import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import ValidationError

from app.deps import current_owner, error_detail, get_gate
from app.models import VideoCreateResponse, VideoStatusResponse
from models.listing import GenerationRequest, PhotoImage, PropertyDetails
from services import store
from services.admission import AdmissionGate, group_images, new_job_id
from services.errors import (
    DuplicateJobError,
    InsufficientCreditsError,
    RequestValidationError,
)

router = APIRouter(tags=["videos"])
logger = logging.getLogger(__name__)


def _parse_details(raw: str) -> PropertyDetails:
    try:
        return PropertyDetails.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise RequestValidationError(f"property_details is not a valid object: {exc}") from exc


def _parse_modes(raw: str) -> list[str]:
    try:
        groups = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise RequestValidationError("photo_groups must be a JSON list") from exc
    if not isinstance(groups, list):
        raise RequestValidationError("photo_groups must be a JSON list")
    return [group.get("mode", "") if isinstance(group, dict) else str(group) for group in groups]


@router.post("/videos", response_model=VideoCreateResponse)
async def create_video(
    owner_id: str = Form(...),
    property_details: str = Form(...),
    photo_groups: str = Form(...),
    images: list[UploadFile] = File(default=[]),
    job_id: str | None = Form(default=None),
    caller: str = Depends(current_owner),
    gate: AdmissionGate = Depends(get_gate),
) -> VideoCreateResponse:
    """Accept a generation request; the video is produced in the background."""
    if caller != owner_id:
        raise HTTPException(
            status_code=403,
            detail={"code": "FORBIDDEN", "message": "Token does not belong to this owner"},
        )
    try:
        photos = [
            PhotoImage(
                filename=upload.filename or f"photo_{i}.jpg",
                content_type=upload.content_type or "image/jpeg",
                data=await upload.read(),
            )
            for i, upload in enumerate(images)
        ]
        request = GenerationRequest(
            job_id=job_id or new_job_id(),
            owner_id=owner_id,
            details=_parse_details(property_details),
            photo_groups=group_images(_parse_modes(photo_groups), photos),
        )
        admitted = await gate.admit(request)
    except RequestValidationError as exc:
        raise HTTPException(status_code=400, detail=error_detail(exc)) from exc
    except InsufficientCreditsError as exc:
        logger.info("[videos] owner=%s has no credits left", owner_id)
        raise HTTPException(status_code=402, detail=error_detail(exc)) from exc
    except DuplicateJobError as exc:
        raise HTTPException(status_code=409, detail=error_detail(exc)) from exc
    return VideoCreateResponse(ok=True, job_id=admitted)


@router.get("/videos/{job_id}", response_model=VideoStatusResponse)
def get_video(job_id: str, caller: str = Depends(current_owner)) -> VideoStatusResponse:
    job = store.get_job(job_id)
    if job is None or job.owner_id != caller:
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": "Video not found"})
    return VideoStatusResponse(
        status=job.status,
        processing_status_text=job.processing_status_text,
        video_url=job.video_url,
        thumbnail_url=job.thumbnail_url,
        duration_seconds=job.duration_seconds,
        error_text=job.error_text,
    )
