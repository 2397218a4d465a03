"""Clip synthesis: one camera-motion clip per photo group."""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from models.job import ClipResult
from models.listing import PhotoGroup, PhotoGroupMode
from services.gcs import PhotoStorage
from services.luma_client import LumaClient
from services.openai_client import OpenAIClient

logger = logging.getLogger(__name__)


class ClipStage:
    def __init__(
        self,
        photos: PhotoStorage,
        vision: OpenAIClient,
        video: LumaClient,
        *,
        test_mode_marker: str = "[TEST]",
        placeholder_clip_urls: Sequence[str] = (),
    ) -> None:
        self.photos = photos
        self.vision = vision
        self.video = video
        self.test_mode_marker = test_mode_marker
        self.placeholder_clip_urls = tuple(placeholder_clip_urls)

    def is_test_mode(self, title: str) -> bool:
        return bool(self.test_mode_marker) and self.test_mode_marker in title

    async def synthesize(self, job_id: str, slot_index: int, group: PhotoGroup, *, test_mode: bool = False) -> ClipResult:
        """
        Upload the group's photos, describe the motion, then render the clip.

        In test mode the video provider is skipped and a placeholder clip is
        picked round-robin by slot.
        """
        urls = []
        for position, image in enumerate(group.images):
            urls.append(
                await self.photos.store_photo(
                    job_id, slot_index, position, image.filename, image.data, image.content_type
                )
            )
        analysis = await self.vision.analyze_photos(urls)
        logger.info(
            "[%s] slot %d: %s (%s, mood=%s)",
            job_id, slot_index, analysis.camera_motion, analysis.motion_prompt, analysis.mood,
        )

        if test_mode and self.placeholder_clip_urls:
            clip_url = self.placeholder_clip_urls[slot_index % len(self.placeholder_clip_urls)]
            generation_id = None
        else:
            generation_id, clip_url = await self.video.generate_clip(analysis.motion_prompt, urls)
        logger.info("[%s] slot %d clip ready: %s", job_id, slot_index, clip_url)

        return ClipResult(
            slot_index=slot_index,
            source_image_urls=tuple(urls),
            is_keyframe_pair=group.mode is PhotoGroupMode.KEYFRAME_PAIR,
            motion_prompt=analysis.motion_prompt,
            clip_url=clip_url,
            mood=analysis.mood,
            description=analysis.description,
            generation_id=generation_id,
        )

    async def run(self, job_id: str, groups: Sequence[PhotoGroup], *, title: str = "") -> list[ClipResult]:
        """
        Synthesize every group concurrently and return clips in group order.

        Siblings of a failed group are left to finish; the first failure in
        slot order is then raised.
        """
        test_mode = self.is_test_mode(title)
        if test_mode:
            logger.info("[%s] test mode: using placeholder clips", job_id)
        results = await asyncio.gather(
            *(self.synthesize(job_id, i, group, test_mode=test_mode) for i, group in enumerate(groups)),
            return_exceptions=True,
        )
        for slot_index, result in enumerate(results):
            if isinstance(result, BaseException):
                logger.error("[%s] slot %d failed: %s", job_id, slot_index, result)
                raise result
        return list(results)
