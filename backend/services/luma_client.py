"""Luma Dream Machine client: image-to-video generations and status polling."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import httpx

from services.errors import ProviderError, SchemaError
from services.http import ProviderClient
from services.polling import poll_until

logger = logging.getLogger(__name__)

GENERATIONS_URL = "https://api.lumalabs.ai/dream-machine/v1/generations"
NEGATIVE_PROMPT = "extra rooms, distorted"


@dataclass(frozen=True)
class LumaGeneration:
    id: str
    state: str                      # queued | dreaming | completed | failed
    video_url: str | None = None
    failure_reason: str | None = None


def _generation(data: dict) -> LumaGeneration:
    try:
        return LumaGeneration(
            id=str(data["id"]),
            state=str(data.get("state") or "queued"),
            video_url=(data.get("assets") or {}).get("video"),
            failure_reason=data.get("failure_reason"),
        )
    except (KeyError, TypeError, AttributeError) as exc:
        raise SchemaError(f"luma generation body is malformed: {data!r:.200}") from exc


class LumaClient(ProviderClient):
    name = "luma"

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "ray-flash-2",
        clip_seconds: int = 5,
        poll_interval: float = 10.0,
        max_attempts: int = 60,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(http=http)
        self.api_key = api_key
        self.model = model
        self.clip_seconds = clip_seconds
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def create_generation(self, prompt: str, image_urls: Sequence[str]) -> LumaGeneration:
        """Submit a 9:16 clip; two images become the start and end keyframes."""
        if not 1 <= len(image_urls) <= 2:
            raise ValueError("a generation takes one or two keyframe images")
        keyframes = {f"frame{i}": {"type": "image", "url": url} for i, url in enumerate(image_urls)}
        body = {
            "prompt": prompt,
            "negative_prompt": NEGATIVE_PROMPT,
            "model": self.model,
            "resolution": "720p",
            "duration": f"{self.clip_seconds}s",
            "aspect_ratio": "9:16",
            "keyframes": keyframes,
        }
        response = await self.http.post(GENERATIONS_URL, json=body, headers=self._headers)
        return _generation(self.json_body(response, "generation"))

    async def get_generation(self, generation_id: str) -> LumaGeneration:
        response = await self.http.get(f"{GENERATIONS_URL}/{generation_id}", headers=self._headers)
        return _generation(self.json_body(response, "generation status"))

    async def wait_for_clip(self, generation_id: str) -> str:
        """Poll until the generation completes and return its video URL."""

        async def check() -> str | None:
            generation = await self.get_generation(generation_id)
            if generation.state == "completed" and generation.video_url:
                return generation.video_url
            if generation.state == "failed":
                raise ProviderError(
                    f"Luma generation failed: {generation.failure_reason or 'Unknown error'}"
                )
            return None

        return await poll_until(
            check,
            interval=self.poll_interval,
            max_attempts=self.max_attempts,
            describe=f"Luma generation {generation_id}",
        )

    async def generate_clip(self, prompt: str, image_urls: Sequence[str]) -> tuple[str, str]:
        """Submit and wait; returns (generation id, clip URL)."""
        generation = await self.create_generation(prompt, image_urls)
        logger.info("[luma] generation %s submitted", generation.id)
        return generation.id, await self.wait_for_clip(generation.id)
