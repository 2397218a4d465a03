"""Custom background music uploads."""

import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from app.config import get_settings
from app.deps import current_owner, error_detail, get_services
from app.models import CustomMusicResponse
from services.container import PipelineServices
from services.errors import MusicUploadError, ProviderError
from services.music import upload_custom_music

router = APIRouter(tags=["music"])
logger = logging.getLogger(__name__)


@router.post("/music/custom", response_model=CustomMusicResponse, status_code=201)
async def upload_music(
    file: UploadFile = File(...),
    title: str | None = Form(default=None),
    owner_id: str = Depends(current_owner),
    services: PipelineServices = Depends(get_services),
) -> CustomMusicResponse:
    settings = get_settings()
    data = await file.read()
    try:
        track = await upload_custom_music(
            services.compositor,
            owner_id,
            file.filename or "music.mp3",
            data,
            title=title,
            max_bytes=settings.custom_music_max_bytes,
            max_seconds=settings.custom_music_max_seconds,
        )
    except MusicUploadError as exc:
        raise HTTPException(status_code=400, detail=error_detail(exc)) from exc
    except ProviderError as exc:
        logger.warning("[music] upload for owner=%s failed: %s", owner_id, exc)
        raise HTTPException(status_code=502, detail=error_detail(exc)) from exc
    logger.info("[music] owner=%s uploaded %s (%ss)", owner_id, track.id, track.duration_seconds)
    return CustomMusicResponse(
        id=track.id,
        title=track.title,
        url=track.url,
        duration_seconds=track.duration_seconds,
        file_size_bytes=track.file_size_bytes,
        format=track.format,
        created_at=track.created_at,
    )
