"""Pipeline orchestrator: runs one admitted job from clips to the final video.

processing -> clips -> audio -> assembled -> (captioned | caption-skipped) -> completed
and processing -> failed from any stage on an unrecoverable error. A run whose
job was closed elsewhere stops at the next stage boundary.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from models.captions import CaptionStyle
from models.job import AssemblyResult, AudioResult, ClipResult, PipelineStage
from models.listing import GenerationRequest, OwnerSettings
from services import store
from services.container import PipelineServices
from services.errors import JobClosedError

logger = logging.getLogger(__name__)

PROGRESS_TEXT = {
    PipelineStage.CLIPS: "Generating clips",
    PipelineStage.AUDIO: "Generating voiceover and music",
    PipelineStage.ASSEMBLY: "Assembling video",
    PipelineStage.CAPTIONS: "Adding captions",
    PipelineStage.FINALIZE: "Finalizing",
}


class PipelineOrchestrator:
    def __init__(self, services: PipelineServices) -> None:
        self.services = services

    async def _progress(self, job_id: str, status_text: str, **values) -> None:
        if not await asyncio.to_thread(store.update_progress, job_id, status_text, **values):
            raise JobClosedError(f"Job {job_id} is no longer processing")

    async def _enter(self, job_id: str, stage: PipelineStage) -> None:
        logger.info("[%s] stage: %s", job_id, stage.value)
        await self._progress(job_id, PROGRESS_TEXT[stage])
        await asyncio.to_thread(store.heartbeat_task, job_id)

    async def run(self, request: GenerationRequest) -> None:
        """Run the job to a terminal state. Never raises for pipeline failures."""
        job_id = request.job_id
        started_at = store.utcnow()
        try:
            await self._run(request, started_at)
        except JobClosedError:
            logger.warning("[%s] job was closed elsewhere; abandoning the run", job_id)
        except Exception as exc:
            logger.error("[%s] pipeline failed: %s", job_id, exc, exc_info=True)
            await asyncio.to_thread(store.fail_job, job_id, str(exc) or type(exc).__name__)

    async def _run(self, request: GenerationRequest, started_at: datetime) -> None:
        job_id = request.job_id
        settings = await asyncio.to_thread(store.get_owner_settings, request.owner_id)

        await self._enter(job_id, PipelineStage.CLIPS)
        clips = await self.services.clips.run(job_id, request.photo_groups, title=request.details.title)

        await self._enter(job_id, PipelineStage.AUDIO)
        audio = await self.services.audio.run(job_id, request.owner_id, request.details, clips, settings)

        await self._enter(job_id, PipelineStage.ASSEMBLY)
        assembled = await self.assemble(job_id, clips, audio, settings)
        await self._progress(
            job_id,
            "Video assembled",
            video_url=assembled.video_url,
            duration_seconds=assembled.duration_seconds,
        )

        final_url = assembled.video_url
        caption_data: dict = {"enabled": settings.captions_enabled}
        if settings.captions_enabled:
            await self._enter(job_id, PipelineStage.CAPTIONS)
            final_url, caption_data = await self.add_captions(job_id, assembled, audio, settings)

        await self._enter(job_id, PipelineStage.FINALIZE)
        thumbnail = clips[0].source_image_urls[0] if clips and clips[0].source_image_urls else None
        completed = await asyncio.to_thread(
            store.complete_job,
            job_id,
            video_url=final_url,
            duration_seconds=assembled.duration_seconds,
            thumbnail_url=thumbnail,
        )
        if not completed:
            raise JobClosedError(f"Job {job_id} is no longer processing")
        completed_at = store.utcnow()
        await asyncio.to_thread(
            store.save_generation_details,
            job_id,
            clip_data=[clip.to_record() for clip in clips],
            voiceover_script=audio.voiceover_script,
            voiceover_url=audio.voiceover_url,
            music_url=audio.music_url,
            music_source=audio.music_source.value,
            caption_data=caption_data,
            settings_snapshot=settings.model_dump(mode="json"),
            started_at=started_at,
            completed_at=completed_at,
        )
        logger.info(
            "[%s] completed in %.0fs: %s",
            job_id, (completed_at - started_at).total_seconds(), final_url,
        )

    async def assemble(
        self, job_id: str, clips: list[ClipResult], audio: AudioResult, settings: OwnerSettings
    ) -> AssemblyResult:
        stage = self.services.assembly
        inputs = await stage.prepare(job_id, clips, audio, settings)
        transformation_url = stage.compose(inputs, settings)
        logger.info("[%s] assembly url: %s", job_id, transformation_url)
        asset = await self.services.compositor.materialize(transformation_url, public_id=f"final_{job_id}")
        return AssemblyResult(
            video_url=asset.secure_url,
            public_id=asset.public_id,
            duration_seconds=stage.duration_seconds(len(clips)),
            transformation_url=transformation_url,
        )

    async def add_captions(
        self, job_id: str, assembled: AssemblyResult, audio: AudioResult, settings: OwnerSettings
    ) -> tuple[str, dict]:
        """Captioned video URL and caption record; falls back to the base video on any failure."""
        try:
            style = CaptionStyle.model_validate(settings.caption_style)
            outcome = await self.services.captions.caption_video(
                job_id,
                base_public_id=assembled.public_id,
                voiceover_url=audio.voiceover_url,
                script=audio.voiceover_script,
                style=style,
                language=settings.voice_language_code.split("-")[0] or None,
            )
        except Exception as exc:
            logger.warning("[%s] captions failed, publishing without them: %s", job_id, exc, exc_info=True)
            return assembled.video_url, {"enabled": True, "applied": False, "error": str(exc)}
        return outcome.video_url, {
            "enabled": True,
            "applied": True,
            "style": outcome.style,
            "transcript_srt": outcome.transcript_srt,
            "cue_count": outcome.cue_count,
            "frame_count": outcome.frame_count,
        }
