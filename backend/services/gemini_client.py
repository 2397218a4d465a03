"""Google Gemini client: narration script generation and speech synthesis."""

from __future__ import annotations

import base64
import io
import json
import logging
import wave

import httpx

from models.listing import PropertyDetails
from services.errors import SchemaError
from services.http import ProviderClient

logger = logging.getLogger(__name__)

API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
TTS_FLASH_MODEL = "gemini-2.5-flash-preview-tts"
TTS_PRO_MODEL = "gemini-2.5-pro-preview-tts"

# Gemini TTS returns raw 16-bit little-endian mono PCM at 24 kHz.
PCM_SAMPLE_RATE = 24_000
PCM_SAMPLE_WIDTH = 2

SCRIPT_PROMPT = """You are a performance copywriter for short vertical real-estate videos.
The voiceover must hold attention: an honest, punchy hook in the first sentence, then a clear
outcome for the viewer and a few short facts taken only from the input below.

INPUT (the only facts you may use)
Title: {title}
Location: {location}
Price: {price}
Size: {size}
Bedrooms: {beds}
Bathrooms: {baths}
Floor: {floor}
Features: {extras}
VISUAL_CONTEXT (order of the shots): {visual_context}

RULES
- {min_words} to {max_words} words in total.
- Write every number in words; never use digits.
- Never invent facts, rooms or amenities that are not in the input.
- Mention that the price is in the description instead of reading it out.
- End with a call to action (for example: send a message for a viewing).
- Language: {language}.

OUTPUT FORMAT (return ONLY a JSON object, no code fences or extra text)
{{"voice_text": "the full voiceover"}}"""


def tts_model_for_voice(voice_id: str) -> tuple[str, str]:
    """Split a voice id such as ``Kore-flash`` into (model, voice name)."""
    if voice_id.endswith("-pro"):
        return TTS_PRO_MODEL, voice_id[: -len("-pro")]
    if voice_id.endswith("-flash"):
        return TTS_FLASH_MODEL, voice_id[: -len("-flash")]
    return TTS_FLASH_MODEL, voice_id


def pcm_to_wav(pcm: bytes, *, sample_rate: int = PCM_SAMPLE_RATE) -> bytes:
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(PCM_SAMPLE_WIDTH)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buffer.getvalue()


def wav_duration(data: bytes) -> float:
    with wave.open(io.BytesIO(data), "rb") as wav:
        return wav.getnframes() / float(wav.getframerate())


def _first_part(data: dict, what: str) -> dict:
    try:
        return data["candidates"][0]["content"]["parts"][0]
    except (KeyError, IndexError, TypeError) as exc:
        raise SchemaError(f"gemini {what} returned no candidates") from exc


class GeminiClient(ProviderClient):
    name = "gemini"

    def __init__(
        self,
        api_key: str,
        *,
        script_model: str = "gemini-2.0-flash",
        http: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(http=http)
        self.api_key = api_key
        self.script_model = script_model

    async def _generate(self, model: str, body: dict, what: str) -> dict:
        response = await self.http.post(
            f"{API_BASE}/{model}:generateContent",
            json=body,
            headers={"x-goog-api-key": self.api_key},
        )
        return self.json_body(response, what)

    async def generate_script(
        self,
        details: PropertyDetails,
        visual_context: str,
        *,
        min_words: int,
        max_words: int,
        language: str = "en-US",
    ) -> str:
        prompt = SCRIPT_PROMPT.format(
            visual_context=visual_context,
            min_words=min_words,
            max_words=max_words,
            language=language,
            **details.model_dump(),
        )
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }
        data = await self._generate(self.script_model, body, "script generation")
        text = _first_part(data, "script generation").get("text") or ""
        try:
            parsed = json.loads(text.strip().removeprefix("```json").removesuffix("```"))
            script = str(parsed["voice_text"]).strip()
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            raise SchemaError(f"Script response is not the expected JSON: {text[:200]}") from exc
        return script

    async def synthesize_speech(self, text: str, voice_id: str, *, style_instructions: str | None = None) -> bytes:
        """Speak ``text`` with a prebuilt voice; returns a WAV file."""
        model, voice_name = tts_model_for_voice(voice_id)
        speech_config: dict = {"voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice_name}}}
        contents_text = f"{style_instructions.strip()}: {text}" if style_instructions else text
        body = {
            "contents": [{"parts": [{"text": contents_text}]}],
            "generationConfig": {"responseModalities": ["AUDIO"], "speechConfig": speech_config},
        }
        data = await self._generate(model, body, "speech synthesis")
        encoded = (_first_part(data, "speech synthesis").get("inlineData") or {}).get("data")
        if not encoded:
            raise SchemaError("No audio data returned from Gemini TTS")
        pcm = base64.b64decode(encoded)
        if not pcm:
            raise SchemaError("Gemini TTS returned empty audio")
        logger.debug("[gemini] synthesized %d PCM bytes with voice %s", len(pcm), voice_name)
        return pcm_to_wav(pcm)
