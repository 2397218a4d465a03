"""Runtime settings for the listing-reels backend.

Every field is read from an upper-case environment variable of the same
name and falls back to the default declared here.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

DEFAULT_PLACEHOLDER_CLIPS = (
    "https://res.cloudinary.com/demo/video/upload/samples/placeholder_clip_1.mp4",
    "https://res.cloudinary.com/demo/video/upload/samples/placeholder_clip_2.mp4",
    "https://res.cloudinary.com/demo/video/upload/samples/placeholder_clip_3.mp4",
)


@dataclass
class Settings:
    """Centralized configuration, built once per process by get_settings()."""

    # Storage
    database_url: str = "sqlite:///./data/listing_reels.db"
    data_dir: Path = field(default_factory=lambda: Path("./data"))
    gcs_bucket: str = "listing-reels-media"
    signed_url_seconds: int = 48 * 3600

    # Remote compositor (Cloudinary-style)
    compositor_cloud_name: str = "listing-reels"
    compositor_api_key: str = ""
    compositor_api_secret: str = ""
    compositor_upload_preset: str = "ml_default"
    materialize_poll_interval: float = 5.0
    materialize_max_attempts: int = 24

    # Provider credentials
    openai_api_key: str = ""
    luma_api_key: str = ""
    google_ai_api_key: str = ""
    elevenlabs_api_key: str = ""

    # Provider models
    vision_model: str = "gpt-4o"
    correction_model: str = "gpt-4o-mini"
    transcription_model: str = "whisper-1"
    script_model: str = "gemini-2.0-flash"
    luma_model: str = "ray-flash-2"

    # Clip synthesis
    clip_seconds: int = 5
    clip_poll_interval: float = 10.0
    clip_max_attempts: int = 60
    test_mode_marker: str = "[TEST]"
    placeholder_clip_urls: tuple[str, ...] = DEFAULT_PLACEHOLDER_CLIPS

    # Music generation
    music_poll_interval: float = 10.0
    music_max_attempts: int = 30
    music_seconds: int = 30
    custom_music_max_bytes: int = 10 * 1024 * 1024
    custom_music_max_seconds: int = 60

    # Captions
    caption_width: int = 1080
    caption_height: int = 1920
    caption_fps: int = 30
    fonts_dir: Path = field(default_factory=lambda: Path("./fonts"))
    caption_preview_hosts: tuple[str, ...] = ("res.cloudinary.com",)
    transcription_max_bytes: int = 25 * 1024 * 1024

    # Worker
    worker_concurrency: int = 2
    stale_job_timeout_seconds: int = 45 * 60
    watchdog_interval_seconds: float = 60.0

    # HTTP / auth
    jwt_secret: str = ""
    jwt_audience: str = "authenticated"
    cors_origins: tuple[str, ...] = ("http://localhost:5173", "http://localhost:3000")
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables.

        Example: ``clip_poll_interval`` is read from ``CLIP_POLL_INTERVAL``.
        Tuple fields are comma separated.
        """
        values = {}
        for item in fields(cls):
            raw = os.getenv(item.name.upper())
            if raw is None:
                continue
            values[item.name] = _coerce(item.name, raw, cls)
        return cls(**values)

    def validate(self) -> list[str]:
        """Return a list of configuration issues; empty when usable."""
        issues = []
        for name in ("openai_api_key", "luma_api_key", "google_ai_api_key", "elevenlabs_api_key"):
            if not getattr(self, name):
                issues.append(f"{name.upper()} not set")
        if not self.jwt_secret:
            issues.append("JWT_SECRET not set; every authenticated request will be rejected")
        if self.clip_poll_interval <= 0 or self.clip_max_attempts <= 0:
            issues.append("CLIP_POLL_INTERVAL and CLIP_MAX_ATTEMPTS must be positive")
        if self.caption_fps <= 0:
            issues.append(f"CAPTION_FPS must be positive, got {self.caption_fps}")
        if self.worker_concurrency <= 0:
            issues.append(f"WORKER_CONCURRENCY must be positive, got {self.worker_concurrency}")
        return issues

    @property
    def spool_dir(self) -> Path:
        return self.data_dir / "spool"


def _coerce(name: str, raw: str, cls: type[Settings]) -> object:
    default = getattr(cls, name, None)
    if name in ("data_dir", "fonts_dir"):
        return Path(raw)
    if name in ("placeholder_clip_urls", "cors_origins", "caption_preview_hosts"):
        return tuple(part.strip() for part in raw.split(",") if part.strip())
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw.strip()


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the process-wide settings (created from env on first use)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Drop cached settings (tests)."""
    global _settings
    _settings = None


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for the service process."""
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
