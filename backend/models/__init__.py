from .captions import (
    CaptionAnimation,
    CaptionCue,
    CaptionFrame,
    CaptionPosition,
    CaptionStyle,
    CaptionWord,
    RenderOptions,
    UploadedFrame,
)
from .job import (
    AssemblyResult,
    AudioResult,
    CaptionOutcome,
    ClipResult,
    JobStatus,
    MusicPreference,
    MusicSource,
    PipelineStage,
)
from .listing import (
    GenerationRequest,
    OwnerSettings,
    PhotoGroup,
    PhotoGroupMode,
    PhotoImage,
    PropertyDetails,
)
from .transcript import PlainTranscript, SegmentTranscript, Transcript, TranscriptWord, WordTranscript

__all__ = [
    "AssemblyResult",
    "AudioResult",
    "CaptionAnimation",
    "CaptionCue",
    "CaptionFrame",
    "CaptionOutcome",
    "CaptionPosition",
    "CaptionStyle",
    "CaptionWord",
    "ClipResult",
    "GenerationRequest",
    "JobStatus",
    "MusicPreference",
    "MusicSource",
    "OwnerSettings",
    "PhotoGroup",
    "PhotoGroupMode",
    "PhotoImage",
    "PipelineStage",
    "PlainTranscript",
    "PropertyDetails",
    "RenderOptions",
    "SegmentTranscript",
    "Transcript",
    "TranscriptWord",
    "UploadedFrame",
    "WordTranscript",
]
