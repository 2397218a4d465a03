"""Shared fixtures: a throwaway database per test and in-memory provider fakes."""

import asyncio
import threading
from dataclasses import dataclass, field
from pathlib import Path

import httpx
import pytest

from app.config import reset_settings
from db.engine import configure_database, dispose_engine, init_db
from models.captions import RenderOptions
from models.listing import GenerationRequest, PhotoGroup, PhotoGroupMode, PhotoImage, PropertyDetails
from models.transcript import SegmentTranscript, TranscriptSegment
from services import store
from services.assembly_stage import AssemblyStage
from services.audio_stage import AudioStage
from services.captions import CaptionService
from services.clip_stage import ClipStage
from services.compositor import CompositorClient, UploadedAsset, delivery_url
from services.container import PipelineServices
from services.errors import MaterializationError, ProviderError
from services.gemini_client import pcm_to_wav
from services.openai_client import MotionAnalysis

TEST_JWT_SECRET = "test-secret-for-listing-reels"
CLOUD = "demo"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def database(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Fresh SQLite file and settings for every test."""
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    reset_settings()
    configure_database(f"sqlite:///{tmp_path / 'test.db'}")
    init_db()
    yield
    dispose_engine()
    reset_settings()


def make_request(
    job_id: str = "job-1",
    owner_id: str = "owner-1",
    *,
    title: str = "Sunny two-bedroom flat",
    modes: tuple[PhotoGroupMode, ...] = (PhotoGroupMode.SINGLE,),
) -> GenerationRequest:
    groups = []
    for slot, mode in enumerate(modes):
        count = 2 if mode is PhotoGroupMode.KEYFRAME_PAIR else 1
        images = tuple(
            PhotoImage(filename=f"room_{slot}_{i}.jpg", content_type="image/jpeg", data=f"jpeg-{slot}-{i}".encode())
            for i in range(count)
        )
        groups.append(PhotoGroup(mode=mode, images=images))
    return GenerationRequest(
        job_id=job_id,
        owner_id=owner_id,
        details=PropertyDetails(title=title, price="250000 EUR", location="Novi Sad", beds="2"),
        photo_groups=tuple(groups),
    )


class FakePhotoStorage:
    def __init__(self) -> None:
        self.stored: list[tuple[str, int, int]] = []

    async def store_photo(self, job_id, slot_index, position, filename, data, content_type) -> str:
        self.stored.append((job_id, slot_index, position))
        return f"https://storage.test/{job_id}/slot_{slot_index:02d}_{position}.jpg"


class FakeOpenAI:
    """Vision, transcription and correction in one object, like the real client."""

    def __init__(self) -> None:
        self.analyzed: list[list[str]] = []
        self.transcribed = 0
        self.transcript = SegmentTranscript(
            segments=(
                TranscriptSegment(start=0.0, end=2.0, text="Welcome to this bright home"),
                TranscriptSegment(start=2.0, end=4.0, text="send us a message today"),
            ),
            language="en",
        )
        self.transcribe_error: Exception | None = None
        self.http = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"RIFFfake"))
        )

    async def analyze_photos(self, image_urls) -> MotionAnalysis:
        self.analyzed.append(list(image_urls))
        return MotionAnalysis(
            is_keyframe=len(image_urls) == 2,
            camera_motion="Push In",
            description="Bright living room with large windows",
            luma_prompt=f"Push In slowly across room {len(self.analyzed)}",
            mood="calm",
        )

    async def transcribe(self, audio, *, filename="voiceover.wav", language=None):
        self.transcribed += 1
        if self.transcribe_error is not None:
            raise self.transcribe_error
        return self.transcript

    async def correct_transcript(self, srt: str, script: str) -> str:
        return srt

    async def aclose(self) -> None:
        await self.http.aclose()


class FakeVideo:
    """Clip provider; later slots finish first so ordering bugs show up."""

    def __init__(self, *, fail_slots: tuple[int, ...] = ()) -> None:
        self.fail_slots = fail_slots
        self.started: list[str] = []
        self.finished: list[str] = []

    async def generate_clip(self, prompt, image_urls) -> tuple[str, str]:
        url = image_urls[0]
        slot = int(url.rsplit("slot_", 1)[1][:2])
        self.started.append(url)
        await asyncio.sleep(0.01 * (5 - slot % 5))
        self.finished.append(url)
        if slot in self.fail_slots:
            raise ProviderError(f"Luma generation failed: slot {slot} rejected")
        return f"gen-{slot}", f"https://cdn.luma.test/clips/{slot}.mp4"

    async def aclose(self) -> None:
        return None


class FakeWriter:
    """Script writer and TTS."""

    def __init__(self) -> None:
        self.voices: list[str] = []

    async def generate_script(self, details, visual_context, *, min_words, max_words, language="en-US") -> str:
        body = ["lovely"] * ((min_words + max_words) // 2 - 3)
        return " ".join(["Welcome", "home", *body, "message", "us"]) + "."

    async def synthesize_speech(self, text, voice_id, *, style_instructions=None) -> bytes:
        self.voices.append(voice_id)
        return pcm_to_wav(b"\x00\x00" * 24_000 * 4)

    async def aclose(self) -> None:
        return None


class FakeMusic:
    def __init__(self) -> None:
        self.prompts: list[str] = []
        self.error: Exception | None = None

    async def compose(self, prompt, *, duration_seconds=30) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return "https://cdn.elevenlabs.test/music/track.mp3"

    async def aclose(self) -> None:
        return None


class FakeCompositor(CompositorClient):
    """Real URL building; uploads and materialisation are recorded instead of sent."""

    def __init__(self) -> None:
        super().__init__(CLOUD, api_key="key", api_secret="secret")
        self.uploads: list[dict] = []
        self.ingested: list[tuple[str, str]] = []
        self.materialized: list[tuple[str, str]] = []
        self.destroyed: list[str] = []
        self.upload_duration: float | None = 30.0
        self.fail_materialize: set[str] = set()

    async def upload_bytes(self, data, *, filename, resource_type="image", public_id=None, folder=None,
                           content_type="application/octet-stream") -> UploadedAsset:
        stem, _, extension = filename.rpartition(".")
        public_id = public_id or f"{folder}/{stem}"
        self.uploads.append({"public_id": public_id, "resource_type": resource_type, "size": len(data)})
        return UploadedAsset(
            public_id=public_id,
            secure_url=delivery_url(CLOUD, public_id, resource_type=resource_type, extension=extension or "bin"),
            resource_type=resource_type,
            duration=self.upload_duration if resource_type == "video" else None,
            format=extension,
            size_bytes=len(data),
        )

    async def upload_from_url(self, url, *, public_id, resource_type="video") -> UploadedAsset:
        self.ingested.append((url, public_id))
        return UploadedAsset(public_id, delivery_url(CLOUD, public_id, resource_type=resource_type), resource_type)

    async def materialize(self, transformation_url, *, public_id) -> UploadedAsset:
        self.materialized.append((public_id, transformation_url))
        if public_id in self.fail_materialize:
            raise MaterializationError(f"Materialization of {public_id} failed (500)")
        return UploadedAsset(public_id, delivery_url(CLOUD, public_id), "video", duration=25.0)

    async def destroy(self, public_id, *, resource_type="video") -> None:
        self.destroyed.append(public_id)


@dataclass
class Fakes:
    photos: FakePhotoStorage = field(default_factory=FakePhotoStorage)
    openai: FakeOpenAI = field(default_factory=FakeOpenAI)
    video: FakeVideo = field(default_factory=FakeVideo)
    writer: FakeWriter = field(default_factory=FakeWriter)
    music: FakeMusic = field(default_factory=FakeMusic)
    compositor: FakeCompositor = field(default_factory=FakeCompositor)

    def services(self) -> PipelineServices:
        return PipelineServices(
            compositor=self.compositor,
            openai=self.openai,
            clips=ClipStage(
                self.photos,
                self.openai,
                self.video,
                placeholder_clip_urls=("https://cdn.test/placeholder_a.mp4", "https://cdn.test/placeholder_b.mp4"),
            ),
            audio=AudioStage(self.writer, self.music, self.compositor),
            assembly=AssemblyStage(self.compositor),
            captions=CaptionService(self.openai, self.compositor, RenderOptions(width=270, height=480, fps=10)),
        )


@pytest.fixture
def fakes() -> Fakes:
    return Fakes()


@pytest.fixture
def store_threads(monkeypatch: pytest.MonkeyPatch):
    """Wrap store functions by name and record the thread each call ran on."""
    seen: dict[str, set[int]] = {}

    def track(*names: str) -> dict[str, set[int]]:
        for name in names:
            original = getattr(store, name)

            def wrapper(*args, _original=original, _name=name, **kwargs):
                seen.setdefault(_name, set()).add(threading.get_ident())
                return _original(*args, **kwargs)

            monkeypatch.setattr(store, name, wrapper)
        return seen

    return track
