"""Assembly: one composition URL for clips, voiceover, music and logo."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from models.job import AudioResult, ClipResult
from models.listing import OwnerSettings
from services.compositor import CompositorClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssemblyInputs:
    clip_ids: tuple[str, ...]
    voiceover_id: str
    music_id: str
    logo_id: str | None = None


class AssemblyStage:
    """
    Builds the base video composition.

    ``prepare`` makes sure every input lives on the compositor; ``compose``
    is deterministic and only describes the result. Materializing the URL is
    left to the caller.
    """

    def __init__(self, compositor: CompositorClient, *, clip_seconds: int = 5) -> None:
        self.compositor = compositor
        self.clip_seconds = clip_seconds

    async def prepare(
        self,
        job_id: str,
        clips: Sequence[ClipResult],
        audio: AudioResult,
        settings: OwnerSettings,
    ) -> AssemblyInputs:
        clip_ids = []
        for clip in clips:
            clip_ids.append(
                await self.compositor.ensure_asset(
                    clip.clip_url, public_id=f"clips/{job_id}/clip_{clip.slot_index}"
                )
            )
        voiceover_id = await self.compositor.ensure_asset(audio.voiceover_url, public_id=f"voiceover_{job_id}")
        music_id = await self.compositor.ensure_asset(audio.music_url, public_id=f"music/{job_id}")
        logo_id = None
        if settings.logo_url:
            logo_id = await self.compositor.ensure_asset(
                settings.logo_url, public_id=f"logos/{job_id}", resource_type="image"
            )
        logger.info("[%s] assembly inputs ready: %d clips, logo=%s", job_id, len(clip_ids), bool(logo_id))
        return AssemblyInputs(tuple(clip_ids), voiceover_id, music_id, logo_id)

    def duration_seconds(self, clip_count: int) -> int:
        return clip_count * self.clip_seconds

    def compose(self, inputs: AssemblyInputs, settings: OwnerSettings) -> str:
        return self.compositor.assembly_url(
            inputs.clip_ids,
            inputs.voiceover_id,
            inputs.music_id,
            self.duration_seconds(len(inputs.clip_ids)),
            settings.music_volume_db,
            logo_id=inputs.logo_id,
            logo_position=settings.logo_position,
            logo_size_percent=settings.logo_size_percent,
        )
