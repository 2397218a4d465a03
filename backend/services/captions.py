"""Caption subsystem: transcribe, correct, render per cue, upload and composite.

Frames are rendered and uploaded one cue at a time so only a single cue's
frames are ever held in memory; uploads within a cue run concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from models.captions import CaptionCue, CaptionFrame, CaptionStyle, RenderOptions, UploadedFrame
from models.job import CaptionOutcome
from services.caption_renderer import render_cue_frames, render_word_frames
from services.compositor import CompositorClient
from services.errors import CaptionError
from services.http import fetch_bytes
from services.openai_client import OpenAIClient
from services.srt import (
    add_emojis,
    format_srt,
    parse_srt,
    reconcile_corrected,
    split_cue_into_words,
    transcript_to_cues,
)

logger = logging.getLogger(__name__)

# the transcription endpoint rejects larger uploads
TRANSCRIPTION_MAX_BYTES = 25 * 1024 * 1024


async def transcribe_url(
    openai: OpenAIClient,
    audio_url: str,
    *,
    language: str | None = None,
    max_bytes: int = TRANSCRIPTION_MAX_BYTES,
    follow_redirects: bool = True,
) -> list[CaptionCue]:
    """Fetch an audio/video file and return its normalized cues."""
    audio = await fetch_bytes(
        openai.http,
        audio_url,
        "audio for transcription",
        max_bytes=max_bytes,
        follow_redirects=follow_redirects,
    )
    filename = audio_url.rsplit("/", 1)[-1].split("?", 1)[0] or "audio.wav"
    transcript = await openai.transcribe(audio, filename=filename, language=language)
    return transcript_to_cues(transcript)


class CaptionService:
    def __init__(self, openai: OpenAIClient, compositor: CompositorClient, options: RenderOptions) -> None:
        self.openai = openai
        self.compositor = compositor
        self.options = options

    async def build_cues(self, job_id: str, voiceover_url: str, script: str, language: str | None) -> list[CaptionCue]:
        """Timing from the transcription, wording from the narration script."""
        raw = await transcribe_url(self.openai, voiceover_url, language=language)
        if not raw:
            raise CaptionError("Transcription produced no cues")
        corrected_srt = await self.openai.correct_transcript(format_srt(raw), script)
        cues = reconcile_corrected(raw, parse_srt(corrected_srt))
        if not cues:
            raise CaptionError("Corrected transcript produced no cues")
        logger.info("[%s] captions: %d cues (%d raw)", job_id, len(cues), len(raw))
        return cues

    def render(self, cue: CaptionCue, style: CaptionStyle) -> list[CaptionFrame]:
        if style.emoji_augmentation:
            cue = replace(cue, text=add_emojis(cue.text))
        if style.single_word_mode:
            return render_word_frames(split_cue_into_words(cue), style, self.options)
        return render_cue_frames(cue, style, self.options)

    async def _upload_cue(self, job_id: str, cue: CaptionCue, style: CaptionStyle, first_index: int) -> list[UploadedFrame]:
        frames = await asyncio.to_thread(self.render, cue, style)

        async def upload(offset: int, frame: CaptionFrame) -> UploadedFrame:
            asset = await self.compositor.upload_bytes(
                frame.image_bytes,
                filename=f"frame_{first_index + offset}.png",
                resource_type="image",
                public_id=f"captions/{job_id}/frame_{first_index + offset}",
                content_type="image/png",
            )
            return UploadedFrame(storage_id=asset.public_id, timestamp=frame.timestamp, duration=frame.duration)

        return list(await asyncio.gather(*(upload(i, frame) for i, frame in enumerate(frames))))

    async def caption_video(
        self,
        job_id: str,
        *,
        base_public_id: str,
        voiceover_url: str,
        script: str,
        style: CaptionStyle,
        language: str | None = None,
    ) -> CaptionOutcome:
        cues = await self.build_cues(job_id, voiceover_url, script, language)
        uploaded: list[UploadedFrame] = []
        for cue in cues:
            uploaded.extend(await self._upload_cue(job_id, cue, style, len(uploaded)))
        if not uploaded:
            raise CaptionError("No caption frames were rendered")
        logger.info("[%s] captions: %d frames uploaded, compositing", job_id, len(uploaded))

        composite_url = self.compositor.caption_overlay_url(base_public_id, uploaded)
        asset = await self.compositor.materialize(composite_url, public_id=f"final_{job_id}_captioned")
        return CaptionOutcome(
            video_url=asset.secure_url,
            transcript_srt=format_srt(cues),
            cue_count=len(cues),
            frame_count=len(uploaded),
            style=style.model_dump(by_alias=True, mode="json"),
        )
