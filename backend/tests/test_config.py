from pathlib import Path

import pytest

from app.config import DEFAULT_PLACEHOLDER_CLIPS, Settings, get_settings, reset_settings


def test_defaults() -> None:
    settings = Settings()

    assert settings.clip_seconds == 5
    assert settings.caption_fps == 30
    assert settings.stale_job_timeout_seconds == 2700
    assert settings.placeholder_clip_urls == DEFAULT_PLACEHOLDER_CLIPS
    assert settings.spool_dir == Path("./data/spool")


def test_from_env_coerces_types(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKER_CONCURRENCY", "4")
    monkeypatch.setenv("MATERIALIZE_POLL_INTERVAL", "2.5")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.test, https://b.test,")
    monkeypatch.setenv("FONTS_DIR", "/srv/fonts")
    monkeypatch.setenv("TEST_MODE_MARKER", " [DEMO] ")

    settings = Settings.from_env()

    assert settings.worker_concurrency == 4
    assert settings.materialize_poll_interval == 2.5
    assert settings.cors_origins == ("https://a.test", "https://b.test")
    assert settings.fonts_dir == Path("/srv/fonts")
    assert settings.test_mode_marker == "[DEMO]"


def test_validate_reports_missing_keys_and_bad_values() -> None:
    issues = Settings(caption_fps=0, worker_concurrency=0).validate()

    assert "OPENAI_API_KEY not set" in issues
    assert any(issue.startswith("JWT_SECRET not set") for issue in issues)
    assert any("CAPTION_FPS" in issue for issue in issues)
    assert any("WORKER_CONCURRENCY" in issue for issue in issues)


def test_validate_passes_when_configured() -> None:
    settings = Settings(
        openai_api_key="o",
        luma_api_key="l",
        google_ai_api_key="g",
        elevenlabs_api_key="e",
        jwt_secret="s",
    )
    assert settings.validate() == []


def test_settings_are_cached_until_reset(monkeypatch: pytest.MonkeyPatch) -> None:
    first = get_settings()
    assert get_settings() is first

    monkeypatch.setenv("CLIP_SECONDS", "10")
    reset_settings()
    assert get_settings().clip_seconds == 10
