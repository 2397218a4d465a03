from dataclasses import asdict, dataclass, field
from enum import Enum


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class MusicSource(str, Enum):
    GENERATED = "generated"
    LIBRARY = "library"
    CUSTOM = "custom"


class MusicPreference(str, Enum):
    AUTO_GENERATE = "auto_generate"
    LIBRARY_PICK = "library_pick"
    CUSTOM = "custom"


class PipelineStage(str, Enum):
    """Orchestrator states between PROCESSING and a terminal JobStatus."""

    CLIPS = "clips"
    AUDIO = "audio"
    ASSEMBLY = "assembly"
    CAPTIONS = "captions"
    FINALIZE = "finalize"


@dataclass(frozen=True)
class ClipResult:
    slot_index: int
    source_image_urls: tuple[str, ...]   # 1 (pan/zoom) or 2 (start/end keyframes)
    is_keyframe_pair: bool
    motion_prompt: str
    clip_url: str
    mood: str
    description: str
    generation_id: str | None = None     # None in test/bypass mode

    def to_record(self) -> dict:
        record = asdict(self)
        record["source_image_urls"] = list(self.source_image_urls)
        return record


@dataclass(frozen=True)
class AudioResult:
    voiceover_script: str
    voiceover_url: str
    music_url: str
    music_source: MusicSource
    voiceover_seconds: float | None = None


@dataclass(frozen=True)
class AssemblyResult:
    video_url: str
    public_id: str
    duration_seconds: int
    transformation_url: str


@dataclass
class CaptionOutcome:
    video_url: str
    transcript_srt: str
    cue_count: int
    frame_count: int
    style: dict = field(default_factory=dict)
