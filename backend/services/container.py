"""Wires provider clients and pipeline stages from the runtime settings."""

from __future__ import annotations

from dataclasses import dataclass

from app.config import Settings
from models.captions import RenderOptions
from services.assembly_stage import AssemblyStage
from services.audio_stage import AudioStage
from services.captions import CaptionService
from services.clip_stage import ClipStage
from services.compositor import CompositorClient
from services.elevenlabs_client import ElevenLabsClient
from services.gcs import PhotoStorage
from services.gemini_client import GeminiClient
from services.luma_client import LumaClient
from services.openai_client import OpenAIClient


@dataclass
class PipelineServices:
    """Everything one pipeline run talks to; tests swap individual members."""

    compositor: CompositorClient
    openai: OpenAIClient
    clips: ClipStage
    audio: AudioStage
    assembly: AssemblyStage
    captions: CaptionService

    async def aclose(self) -> None:
        for client in (self.compositor, self.openai, self.clips.video, self.audio.writer, self.audio.music):
            await client.aclose()


def build_services(settings: Settings) -> PipelineServices:
    compositor = CompositorClient(
        settings.compositor_cloud_name,
        api_key=settings.compositor_api_key,
        api_secret=settings.compositor_api_secret,
        upload_preset=settings.compositor_upload_preset,
        materialize_interval=settings.materialize_poll_interval,
        materialize_attempts=settings.materialize_max_attempts,
    )
    openai = OpenAIClient(
        settings.openai_api_key,
        vision_model=settings.vision_model,
        correction_model=settings.correction_model,
        transcription_model=settings.transcription_model,
    )
    luma = LumaClient(
        settings.luma_api_key,
        model=settings.luma_model,
        clip_seconds=settings.clip_seconds,
        poll_interval=settings.clip_poll_interval,
        max_attempts=settings.clip_max_attempts,
    )
    gemini = GeminiClient(settings.google_ai_api_key, script_model=settings.script_model)
    elevenlabs = ElevenLabsClient(
        settings.elevenlabs_api_key,
        poll_interval=settings.music_poll_interval,
        max_attempts=settings.music_max_attempts,
    )
    photos = PhotoStorage(settings.gcs_bucket, expiration_seconds=settings.signed_url_seconds)
    options = RenderOptions(
        width=settings.caption_width,
        height=settings.caption_height,
        fps=settings.caption_fps,
        fonts_dir=str(settings.fonts_dir),
    )
    return PipelineServices(
        compositor=compositor,
        openai=openai,
        clips=ClipStage(
            photos,
            openai,
            luma,
            test_mode_marker=settings.test_mode_marker,
            placeholder_clip_urls=settings.placeholder_clip_urls,
        ),
        audio=AudioStage(
            gemini,
            elevenlabs,
            compositor,
            clip_seconds=settings.clip_seconds,
            music_seconds=settings.music_seconds,
            custom_music_max_seconds=settings.custom_music_max_seconds,
        ),
        assembly=AssemblyStage(compositor, clip_seconds=settings.clip_seconds),
        captions=CaptionService(openai, compositor, options),
    )
