"""Narration validation and the music fallback chain."""

import pytest

from models.job import ClipResult, MusicPreference, MusicSource
from models.listing import OwnerSettings, PropertyDetails
from services import store
from services.audio_stage import AudioStage, script_word_band, validate_script
from services.errors import ProviderError, SchemaError

LIBRARY_URL = "https://res.cloudinary.com/demo/video/upload/library/calm_piano.mp3"
GENERATED_URL = "https://cdn.elevenlabs.test/music/track.mp3"


def clip(slot: int = 0, mood: str = "luxury") -> ClipResult:
    return ClipResult(
        slot_index=slot,
        source_image_urls=(f"https://storage.test/slot_{slot}.jpg",),
        is_keyframe_pair=False,
        motion_prompt="Push In slowly toward the window",
        clip_url=f"https://cdn.luma.test/clips/{slot}.mp4",
        mood=mood,
        description="Living room",
    )


def add_custom(duration: int = 40) -> str:
    return store.add_custom_music(
        owner_id="owner-1",
        filename="song.mp3",
        url="https://res.cloudinary.com/demo/video/upload/custom_music/owner-1/song.mp3",
        storage_id="custom_music/owner-1/song",
        duration_seconds=duration,
        file_size_bytes=2048,
        format="mp3",
        title="song",
    ).id


@pytest.fixture
def stage(fakes) -> AudioStage:
    return AudioStage(fakes.writer, fakes.music, fakes.compositor)


def test_word_band_scales_with_duration() -> None:
    assert script_word_band(25) == (57, 63)
    assert script_word_band(5) == (9, 15)


def test_validate_script_accepts_band_with_tolerance() -> None:
    script = " ".join(["word"] * 66)
    assert validate_script(script, (57, 63)) == script


@pytest.mark.parametrize(
    "script, message",
    [
        ("", "empty"),
        ("Three bedrooms for 250000 euros", "digits"),
        ("Too short.", "words"),
        (" ".join(["long"] * 200), "words"),
    ],
)
def test_validate_script_rejects(script: str, message: str) -> None:
    with pytest.raises(SchemaError, match=message):
        validate_script(script, (57, 63))


@pytest.mark.anyio
async def test_missing_custom_track_falls_back_to_library(stage) -> None:
    store.add_library_track(title="Calm piano", url=LIBRARY_URL, storage_id="library/calm_piano")
    settings = OwnerSettings(music_preference=MusicPreference.CUSTOM, selected_custom_music_id="gone")

    url, source = await stage.resolve_music("job-1", "owner-1", settings, [clip()])

    assert (url, source) == (LIBRARY_URL, MusicSource.LIBRARY)


@pytest.mark.anyio
async def test_missing_custom_track_and_empty_library_generates(stage, fakes) -> None:
    settings = OwnerSettings(music_preference=MusicPreference.CUSTOM, selected_custom_music_id="gone")

    url, source = await stage.resolve_music("job-1", "owner-1", settings, [clip(mood="cozy")])

    assert (url, source) == (GENERATED_URL, MusicSource.GENERATED)
    assert "Instrumental cozy track" in fakes.music.prompts[0]


@pytest.mark.anyio
async def test_custom_track_of_another_owner_is_not_used(stage) -> None:
    music_id = add_custom()
    settings = OwnerSettings(music_preference=MusicPreference.CUSTOM, selected_custom_music_id=music_id)

    _, source = await stage.resolve_music("job-1", "owner-2", settings, [clip()])

    assert source is not MusicSource.CUSTOM


@pytest.mark.anyio
async def test_custom_track_over_the_cap_is_skipped(stage) -> None:
    music_id = add_custom(duration=90)
    settings = OwnerSettings(music_preference=MusicPreference.CUSTOM, selected_custom_music_id=music_id)

    _, source = await stage.resolve_music("job-1", "owner-1", settings, [clip()])

    assert source is MusicSource.GENERATED


@pytest.mark.anyio
async def test_library_pick_prefers_first_active_track(stage) -> None:
    store.add_library_track(title="Inactive", url="https://x.test/inactive.mp3", storage_id="a", active=False)
    store.add_library_track(title="Second", url="https://x.test/second.mp3", storage_id="b", sort_order=2)
    store.add_library_track(title="First", url=LIBRARY_URL, storage_id="c", sort_order=1)
    settings = OwnerSettings(music_preference=MusicPreference.LIBRARY_PICK)

    assert await stage.resolve_music("job-1", "owner-1", settings, [clip()]) == (LIBRARY_URL, MusicSource.LIBRARY)


@pytest.mark.anyio
async def test_auto_generate_ignores_library(stage) -> None:
    store.add_library_track(title="Calm piano", url=LIBRARY_URL, storage_id="library/calm_piano")

    _, source = await stage.resolve_music("job-1", "owner-1", OwnerSettings(), [clip()])

    assert source is MusicSource.GENERATED


@pytest.mark.anyio
async def test_generation_failure_propagates(stage, fakes) -> None:
    fakes.music.error = ProviderError("ElevenLabs music generation failed")

    with pytest.raises(ProviderError):
        await stage.resolve_music("job-1", "owner-1", OwnerSettings(), [clip()])


@pytest.mark.anyio
async def test_run_uploads_voiceover_and_reports_duration(stage, fakes) -> None:
    settings = OwnerSettings(voice_id="Puck-pro")
    details = PropertyDetails(title="Flat", price="1", location="Belgrade")

    result = await stage.run("job-1", "owner-1", details, [clip(0), clip(1)], settings)

    assert result.voiceover_url.endswith("/voiceover_job-1.wav")
    assert result.voiceover_seconds == pytest.approx(4.0)
    assert result.music_source is MusicSource.GENERATED
    assert fakes.writer.voices == ["Puck-pro"]
    low, high = script_word_band(10)
    assert low <= len(result.voiceover_script.split()) <= high
