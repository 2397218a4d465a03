"""ElevenLabs client: background music composition."""

from __future__ import annotations

import logging

import httpx

from services.errors import ProviderError, SchemaError
from services.http import ProviderClient
from services.polling import poll_until

logger = logging.getLogger(__name__)

COMPOSE_URL = "https://api.elevenlabs.io/v1/music/compose"
GENERATION_URL = "https://api.elevenlabs.io/v1/music/generations"


def music_prompt(mood: str | None) -> str:
    """Prompt for an instrumental bed matching the listing's mood."""
    return (
        f"Instrumental {mood or 'modern'} track, no vocals, modern production, subtle background "
        "music suitable for real estate video, mid-tempo 105 BPM, clean mix, warm pads, light percussion"
    )


class ElevenLabsClient(ProviderClient):
    name = "elevenlabs"

    def __init__(
        self,
        api_key: str,
        *,
        poll_interval: float = 10.0,
        max_attempts: int = 30,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(http=http)
        self.api_key = api_key
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts

    @property
    def _headers(self) -> dict[str, str]:
        return {"xi-api-key": self.api_key}

    async def compose(self, prompt: str, *, duration_seconds: int = 30) -> str:
        """Compose a track and return its audio URL, polling while it is pending."""
        body = {"text": prompt, "duration_seconds": duration_seconds, "prompt_influence": 0.3}
        response = await self.http.post(COMPOSE_URL, json=body, headers=self._headers)
        data = self.json_body(response, "music compose")
        if data.get("status") == "pending":
            music_id = data.get("music_id")
            if not music_id:
                raise SchemaError("ElevenLabs returned a pending composition without music_id")
            logger.info("[elevenlabs] composition %s pending, polling", music_id)
            return await self.wait_for_music(str(music_id))
        if not data.get("audio_url"):
            raise SchemaError("No audio URL returned from ElevenLabs")
        return str(data["audio_url"])

    async def wait_for_music(self, music_id: str) -> str:
        async def check() -> str | None:
            response = await self.http.get(f"{GENERATION_URL}/{music_id}", headers=self._headers)
            data = self.json_body(response, "music status")
            if data.get("status") == "complete" and data.get("audio_url"):
                return str(data["audio_url"])
            if data.get("status") == "failed":
                raise ProviderError("ElevenLabs music generation failed")
            return None

        return await poll_until(
            check,
            interval=self.poll_interval,
            max_attempts=self.max_attempts,
            describe=f"music generation {music_id}",
        )
