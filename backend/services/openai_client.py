"""OpenAI client: photo motion analysis, Whisper transcription and transcript correction."""

from __future__ import annotations

import json
import logging
from typing import Any, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from models.transcript import (
    PlainTranscript,
    SegmentTranscript,
    Transcript,
    TranscriptSegment,
    TranscriptWord,
    WordTranscript,
)
from services.errors import SchemaError
from services.http import ProviderClient

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_URL = "https://api.openai.com/v1/chat/completions"
TRANSCRIPTIONS_URL = "https://api.openai.com/v1/audio/transcriptions"

CAMERA_MOTIONS = (
    "Static",
    "Move Left",
    "Move Right",
    "Move Up",
    "Move Down",
    "Push In",
    "Pull Out",
    "Zoom In",
    "Zoom Out",
    "Pan Left",
    "Pan Right",
    "Orbit Left",
    "Orbit Right",
    "Crane Up",
    "Crane Down",
)

MOODS = (
    "luxury", "modern", "elegant", "cozy", "upbeat", "calm", "sophisticated",
    "contemporary", "warm", "bright", "minimalist", "spacious", "intimate",
    "professional", "stylish", "chic", "serene", "energetic", "ambient",
    "classic", "urban", "trendy",
)

VISION_PROMPT = f"""You write a compact control prompt for an image-to-video model from 1 or 2 property photos (keyframes).
When two photos are given they are the start and end keyframes of one continuous camera move.

ALLOWED CAMERA MOTIONS (choose EXACTLY one token, verbatim)
{" | ".join(CAMERA_MOTIONS)}

RULES
- Describe only what is visible; never add rooms, furniture or views that are not in the photos.
- Keep the motion slow and smooth; one motion only.
- The luma_prompt must start with the chosen camera motion token.

OUTPUT FORMAT (return ONLY a JSON object, no code fences or extra text)
{{
  "is_keyframe": boolean,
  "camera_motion": "one token from the allowed list",
  "description": "property-only, 12-18 words",
  "luma_prompt": "two sentences, 20-30 words, professional cinematography language",
  "mood": "{"|".join(MOODS)}"
}}"""

CORRECTION_PROMPT = """You are correcting a subtitle transcription by comparing it to the original voiceover script.

Original voiceover script (ground truth for wording):
{script}

Transcription in SRT format (ground truth for timing):
{srt}

Return ONLY the corrected SRT. Keep the same number of cues, the same numbering and the same timestamps.
Replace misheard words with the script's wording, fix punctuation and capitalization, and make no other changes."""


class MotionAnalysis(BaseModel):
    """Validated vision answer for one photo group."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    is_keyframe: bool
    camera_motion: str
    description: str = Field(min_length=1)
    motion_prompt: str = Field(alias="luma_prompt", min_length=1)
    mood: str = "modern"

    @field_validator("camera_motion")
    @classmethod
    def _known_motion(cls, value: str) -> str:
        for motion in CAMERA_MOTIONS:
            if value.strip().lower() == motion.lower():
                return motion
        raise ValueError(f"camera motion {value!r} is not one of the allowed tokens")

    @field_validator("mood")
    @classmethod
    def _normalize_mood(cls, value: str) -> str:
        return value.strip().lower() or "modern"


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_motion_analysis(content: str) -> MotionAnalysis:
    try:
        data = json.loads(_strip_fences(content))
    except json.JSONDecodeError as exc:
        raise SchemaError(f"Vision response is not JSON: {content[:200]}") from exc
    try:
        return MotionAnalysis.model_validate(data)
    except ValidationError as exc:
        raise SchemaError(f"Vision response violates its contract: {exc}") from exc


def resolve_transcript(data: dict[str, Any]) -> Transcript:
    """Turn a verbose_json transcription body into one of the Transcript shapes."""
    language = data.get("language")
    words = tuple(
        TranscriptWord(word=str(w["word"]).strip(), start=float(w["start"]), end=float(w["end"]))
        for w in data.get("words") or []
        if str(w.get("word", "")).strip()
    )
    raw_segments = data.get("segments") or []
    if raw_segments:
        segments = []
        for segment in raw_segments:
            start, end = float(segment["start"]), float(segment["end"])
            segment_words = tuple(w for w in words if start <= w.start < end)
            segments.append(
                TranscriptSegment(start=start, end=end, text=str(segment["text"]).strip(), words=segment_words)
            )
        return SegmentTranscript(segments=tuple(segments), language=language)
    if words:
        return WordTranscript(words=words, language=language)
    text = str(data.get("text") or "").strip()
    duration = data.get("duration")
    return PlainTranscript(text=text, duration=float(duration) if duration is not None else None, language=language)


class OpenAIClient(ProviderClient):
    name = "openai"

    def __init__(
        self,
        api_key: str,
        *,
        vision_model: str = "gpt-4o",
        correction_model: str = "gpt-4o-mini",
        transcription_model: str = "whisper-1",
        http: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(http=http)
        self.api_key = api_key
        self.vision_model = vision_model
        self.correction_model = correction_model
        self.transcription_model = transcription_model

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def _chat(self, body: dict[str, Any], what: str) -> str:
        response = await self.http.post(CHAT_COMPLETIONS_URL, json=body, headers=self._headers)
        data = self.json_body(response, what)
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise SchemaError(f"openai {what} returned no message") from exc
        if not content:
            raise SchemaError(f"openai {what} returned empty content")
        return content

    async def analyze_photos(self, image_urls: Sequence[str]) -> MotionAnalysis:
        """Ask the vision model for one camera motion and prompt covering 1-2 photos."""
        content: list[dict[str, Any]] = [{"type": "text", "text": VISION_PROMPT}]
        content.extend({"type": "image_url", "image_url": {"url": url}} for url in image_urls)
        body = {
            "model": self.vision_model,
            "messages": [{"role": "user", "content": content}],
            "max_tokens": 4000,
            "temperature": 0.7,
            "top_p": 0.5,
            "response_format": {"type": "json_object"},
        }
        analysis = parse_motion_analysis(await self._chat(body, "vision analysis"))
        logger.debug("[openai] motion=%s mood=%s", analysis.camera_motion, analysis.mood)
        return analysis

    async def transcribe(self, audio: bytes, *, filename: str = "voiceover.wav", language: str | None = None) -> Transcript:
        data: dict[str, Any] = {
            "model": self.transcription_model,
            "response_format": "verbose_json",
            "timestamp_granularities[]": ["segment", "word"],
        }
        if language:
            data["language"] = language
        response = await self.http.post(
            TRANSCRIPTIONS_URL,
            data=data,
            files={"file": (filename, audio, "application/octet-stream")},
            headers=self._headers,
        )
        body = self.json_body(response, "transcription")
        if not isinstance(body, dict):
            raise SchemaError("openai transcription returned an unexpected body")
        try:
            return resolve_transcript(body)
        except (KeyError, TypeError, ValueError) as exc:
            raise SchemaError(f"openai transcription has malformed timings: {exc}") from exc

    async def correct_transcript(self, srt: str, script: str) -> str:
        """Reword an SRT transcript to match the known script; returns SRT text."""
        body = {
            "model": self.correction_model,
            "messages": [{"role": "user", "content": CORRECTION_PROMPT.format(script=script, srt=srt)}],
            "temperature": 0.3,
        }
        return _strip_fences(await self._chat(body, "transcript correction"))
