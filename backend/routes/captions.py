"""Transcript preview for the caption editor."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.config import get_settings
from app.deps import current_owner, error_detail, get_services
from app.models import CaptionPreviewRequest, CaptionPreviewResponse, CaptionSegment
from services.captions import transcribe_url
from services.container import PipelineServices
from services.errors import CaptionError, MediaTooLargeError, ProviderError, RequestValidationError
from services.http import check_media_url

router = APIRouter(tags=["captions"])
logger = logging.getLogger(__name__)


@router.post("/captions/preview", response_model=CaptionPreviewResponse)
async def preview_captions(
    body: CaptionPreviewRequest,
    owner_id: str = Depends(current_owner),
    services: PipelineServices = Depends(get_services),
) -> CaptionPreviewResponse:
    """Transcribe a video and return its timed segments."""
    settings = get_settings()
    try:
        video_url = check_media_url(body.video_url, settings.caption_preview_hosts)
        cues = await transcribe_url(
            services.openai,
            video_url,
            language=body.language,
            max_bytes=settings.transcription_max_bytes,
            follow_redirects=False,
        )
    except MediaTooLargeError as exc:
        raise HTTPException(status_code=413, detail=error_detail(exc)) from exc
    except RequestValidationError as exc:
        logger.info("[captions] preview for owner=%s refused: %s", owner_id, exc)
        raise HTTPException(status_code=400, detail=error_detail(exc)) from exc
    except CaptionError as exc:
        raise HTTPException(status_code=422, detail=error_detail(exc)) from exc
    except ProviderError as exc:
        logger.warning("[captions] preview for owner=%s failed: %s", owner_id, exc)
        raise HTTPException(status_code=502, detail=error_detail(exc)) from exc
    return CaptionPreviewResponse(
        segments=[CaptionSegment(start=cue.start_time, end=cue.end_time, text=cue.text) for cue in cues]
    )
