"""Audio synthesis: narration script, voiceover and background music."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Sequence

from models.job import AudioResult, ClipResult, MusicPreference, MusicSource
from models.listing import OwnerSettings, PropertyDetails
from services import store
from services.compositor import CompositorClient
from services.elevenlabs_client import ElevenLabsClient, music_prompt
from services.errors import SchemaError
from services.gemini_client import GeminiClient, wav_duration

logger = logging.getLogger(__name__)

# Narration pace used to size the script to the video.
WORDS_PER_SECOND = 2.4
WORD_BAND_HALF_WIDTH = 3
WORD_BAND_TOLERANCE = 0.15

_DIGITS = re.compile(r"\d")


def script_word_band(duration_seconds: float) -> tuple[int, int]:
    """(min, max) word count requested for a video of ``duration_seconds``."""
    target = round(duration_seconds * WORDS_PER_SECOND)
    return max(1, target - WORD_BAND_HALF_WIDTH), max(1, target + WORD_BAND_HALF_WIDTH)


def validate_script(script: str, band: tuple[int, int]) -> str:
    """Check length and structure only; wording is trusted."""
    script = " ".join(script.split())
    if not script:
        raise SchemaError("Narration script is empty")
    if _DIGITS.search(script):
        raise SchemaError("Narration script contains digits; numbers must be written out")
    count = len(script.split())
    low, high = band
    if count < low * (1 - WORD_BAND_TOLERANCE) or count > high * (1 + WORD_BAND_TOLERANCE):
        raise SchemaError(f"Narration script has {count} words, expected {low}-{high}")
    return script


class AudioStage:
    def __init__(
        self,
        writer: GeminiClient,
        music: ElevenLabsClient,
        compositor: CompositorClient,
        *,
        clip_seconds: int = 5,
        music_seconds: int = 30,
        custom_music_max_seconds: int = 60,
    ) -> None:
        self.writer = writer
        self.music = music
        self.compositor = compositor
        self.clip_seconds = clip_seconds
        self.music_seconds = music_seconds
        self.custom_music_max_seconds = custom_music_max_seconds

    async def write_script(self, job_id: str, details: PropertyDetails, clips: Sequence[ClipResult], language: str) -> str:
        band = script_word_band(len(clips) * self.clip_seconds)
        visual_context = "; ".join(clip.motion_prompt for clip in clips)
        script = await self.writer.generate_script(
            details, visual_context, min_words=band[0], max_words=band[1], language=language
        )
        script = validate_script(script, band)
        logger.info("[%s] script: %d words", job_id, len(script.split()))
        return script

    async def voiceover(self, job_id: str, script: str, settings: OwnerSettings) -> tuple[str, float]:
        """Speak the script and store it; returns (url, seconds)."""
        wav = await self.writer.synthesize_speech(
            script, settings.voice_id, style_instructions=settings.voice_style_instructions
        )
        seconds = wav_duration(wav)
        asset = await self.compositor.upload_bytes(
            wav,
            filename=f"voiceover_{job_id}.wav",
            resource_type="video",
            public_id=f"voiceover_{job_id}",
            content_type="audio/wav",
        )
        logger.info("[%s] voiceover: %.1fs at %s", job_id, seconds, asset.secure_url)
        return asset.secure_url, seconds

    async def _custom_track(self, owner_id: str, settings: OwnerSettings) -> str | None:
        track = await asyncio.to_thread(store.get_custom_music, owner_id, settings.selected_custom_music_id)
        if track is None:
            return None
        if track.duration_seconds > self.custom_music_max_seconds:
            logger.warning("custom track %s is %ss, over the cap", track.id, track.duration_seconds)
            return None
        return track.url

    async def _library_track(self) -> str | None:
        track = await asyncio.to_thread(store.first_library_track)
        return track.url if track else None

    async def resolve_music(
        self, job_id: str, owner_id: str, settings: OwnerSettings, clips: Sequence[ClipResult]
    ) -> tuple[str, MusicSource]:
        """
        Walk the fallback chain custom -> library -> generated.

        A lookup miss falls through to the next tier; a generation failure
        propagates.
        """
        preference = settings.music_preference
        if preference is MusicPreference.CUSTOM:
            url = await self._custom_track(owner_id, settings)
            if url:
                return url, MusicSource.CUSTOM
            logger.info("[%s] custom music %s not found, falling back", job_id, settings.selected_custom_music_id)
        if preference in (MusicPreference.CUSTOM, MusicPreference.LIBRARY_PICK):
            url = await self._library_track()
            if url:
                return url, MusicSource.LIBRARY
            logger.info("[%s] no library track available, generating music", job_id)

        mood = clips[0].mood if clips else None
        url = await self.music.compose(music_prompt(mood), duration_seconds=self.music_seconds)
        return url, MusicSource.GENERATED

    async def run(
        self,
        job_id: str,
        owner_id: str,
        details: PropertyDetails,
        clips: Sequence[ClipResult],
        settings: OwnerSettings,
    ) -> AudioResult:
        script = await self.write_script(job_id, details, clips, settings.voice_language_code)
        voiceover_url, seconds = await self.voiceover(job_id, script, settings)
        music_url, source = await self.resolve_music(job_id, owner_id, settings, clips)
        logger.info("[%s] music (%s): %s", job_id, source.value, music_url)
        return AudioResult(
            voiceover_script=script,
            voiceover_url=voiceover_url,
            music_url=music_url,
            music_source=source,
            voiceover_seconds=seconds,
        )
