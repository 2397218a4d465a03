"""Speech-to-text results, resolved once at the client boundary.

A transcription response is one of three shapes depending on what the
provider returned: timed segments, only timed words, or bare text.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class TranscriptWord:
    word: str
    start: float
    end: float


@dataclass(frozen=True)
class TranscriptSegment:
    start: float
    end: float
    text: str
    words: tuple[TranscriptWord, ...] = ()


@dataclass(frozen=True)
class SegmentTranscript:
    segments: tuple[TranscriptSegment, ...]
    language: str | None = None


@dataclass(frozen=True)
class WordTranscript:
    words: tuple[TranscriptWord, ...]
    language: str | None = None


@dataclass(frozen=True)
class PlainTranscript:
    text: str
    duration: float | None = None
    language: str | None = None


Transcript = Union[SegmentTranscript, WordTranscript, PlainTranscript]
