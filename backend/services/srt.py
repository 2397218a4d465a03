"""SRT parsing, formatting and cue utilities for the caption pipeline."""

from __future__ import annotations

import re
from dataclasses import replace
from typing import Iterable, Sequence

from models.captions import CaptionCue, CaptionWord
from models.transcript import PlainTranscript, SegmentTranscript, Transcript, TranscriptWord, WordTranscript
from services.errors import CaptionError

SRT_TIME_RANGE_PATTERN = re.compile(
    r"(?P<start>\d{2}:\d{2}:\d{2}[.,]\d{3})\s*-->\s*(?P<end>\d{2}:\d{2}:\d{2}[.,]\d{3})"
)

# Words grouped into one cue when the transcript only has word timings.
MAX_WORDS_PER_CUE = 7
MAX_WORD_GAP_SECONDS = 0.6
MIN_CUE_SECONDS = 0.01

# Keyword stems (Serbian and English) and the emoji appended when one appears.
EMOJI_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("stan", "kuć", "dom", "nekretnin", "home", "house", "apartment"), "🏠"),
    (("pogled", "vidik", "panoram", "view"), "👀"),
    (("luksuz", "prestiž", "elegancij", "luxur", "elegan"), "✨"),
    (("cena", "cenu", "evr", "dinar", "price"), "💰"),
    (("link", "opis", "profil", "bio", "kontakt", "poruku", "message", "contact", "dm"), "📩"),
    (("lokacij", "adres", "grad", "centar", "location", "downtown"), "📍"),
    (("nov", "modern", "renovira", "new", "renovated"), "✨"),
    (("parking", "garaž", "garage"), "🚗"),
    (("bašt", "dvoriš", "park", "zelenilo", "garden", "yard"), "🌳"),
    (("savršen", "odličan", "perfektno", "perfect"), "❤️"),
)

_SENTENCE_END = (".", "!", "?", "…")


def parse_timestamp(value: str) -> float:
    """``00:00:01,234`` (or with '.') to seconds."""
    hours, minutes, seconds = value.strip().replace(",", ".").split(":")
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def format_timestamp(seconds: float) -> str:
    """Seconds to ``HH:MM:SS,mmm``."""
    total_ms = max(0, int(round(seconds * 1000)))
    hours, rest = divmod(total_ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    secs, millis = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def parse_srt(content: str) -> list[CaptionCue]:
    """
    Parse SRT text into cues.

    Blocks without a numeric index, a valid time range, any text, or with a
    non-positive duration are skipped. Multi-line text is joined with spaces.
    """
    normalized = content.replace("\ufeff", "").replace("\r\n", "\n").strip()
    cues: list[CaptionCue] = []
    if not normalized:
        return cues
    for block in re.split(r"\n\s*\n", normalized):
        lines = [line.strip() for line in block.strip().split("\n")]
        if len(lines) < 3:
            continue
        try:
            index = int(lines[0])
        except ValueError:
            continue
        match = SRT_TIME_RANGE_PATTERN.search(lines[1])
        if not match:
            continue
        start = parse_timestamp(match.group("start"))
        end = parse_timestamp(match.group("end"))
        text = " ".join(line for line in lines[2:] if line).strip()
        if not text or end <= start:
            continue
        cues.append(CaptionCue(index=index, start_time=start, end_time=end, text=text))
    return cues


def format_srt(cues: Iterable[CaptionCue]) -> str:
    blocks = [
        f"{cue.index}\n{format_timestamp(cue.start_time)} --> {format_timestamp(cue.end_time)}\n{cue.text}"
        for cue in cues
    ]
    return "\n\n".join(blocks) + "\n" if blocks else ""


def uppercase_srt(content: str) -> str:
    """Uppercase every cue's text, keeping numbering and timing."""
    return format_srt(replace(cue, text=cue.text.upper()) for cue in parse_srt(content))


def active_cue_at(cues: Sequence[CaptionCue], time: float) -> CaptionCue | None:
    for cue in cues:
        if cue.start_time <= time < cue.end_time:
            return cue
    return None


def split_cue_into_words(cue: CaptionCue) -> list[CaptionWord]:
    """
    One sub-cue per word covering exactly the cue's span.

    Recorded word timings are used when they line up one-to-one with the cue
    text; otherwise the cue duration is divided evenly.
    """
    tokens = cue.text.split()
    if not tokens:
        return []
    if cue.words and len(cue.words) == len(tokens):
        words = []
        for position, (token, timed) in enumerate(zip(tokens, cue.words)):
            if position == 0:
                start = cue.start_time
            else:
                start = min(cue.end_time, max(words[-1].end_time, timed.start_time))
            if position == len(tokens) - 1:
                end = cue.end_time
            else:
                end = min(cue.end_time, max(start, timed.end_time))
            words.append(CaptionWord(word=token, start_time=start, end_time=end))
        # close gaps so consecutive words meet
        return [
            replace(word, end_time=words[i + 1].start_time) if i + 1 < len(words) else word
            for i, word in enumerate(words)
        ]
    step = cue.duration / len(tokens)
    return [
        CaptionWord(
            word=token,
            start_time=cue.start_time + i * step,
            end_time=cue.end_time if i == len(tokens) - 1 else cue.start_time + (i + 1) * step,
        )
        for i, token in enumerate(tokens)
    ]


def add_emojis(text: str) -> str:
    """Append an emoji for each keyword group the text mentions."""
    lowered = text.lower()
    result = text
    for stems, emoji in EMOJI_KEYWORDS:
        if emoji in result:
            continue
        if any(re.search(rf"\b{re.escape(stem)}", lowered) for stem in stems):
            result += f" {emoji}"
    return result.strip()


def _words(transcript_words: Iterable[TranscriptWord]) -> tuple[CaptionWord, ...]:
    return tuple(CaptionWord(word=w.word, start_time=w.start, end_time=w.end) for w in transcript_words)


def _group_words(words: Sequence[TranscriptWord]) -> list[list[TranscriptWord]]:
    groups: list[list[TranscriptWord]] = []
    current: list[TranscriptWord] = []
    for word in words:
        if current and (
            len(current) >= MAX_WORDS_PER_CUE
            or word.start - current[-1].end > MAX_WORD_GAP_SECONDS
            or current[-1].word.endswith(_SENTENCE_END)
        ):
            groups.append(current)
            current = []
        current.append(word)
    if current:
        groups.append(current)
    return groups


def transcript_to_cues(transcript: Transcript) -> list[CaptionCue]:
    """Cues for any transcript shape, already normalized."""
    if isinstance(transcript, SegmentTranscript):
        cues = [
            CaptionCue(
                index=i,
                start_time=segment.start,
                end_time=segment.end,
                text=segment.text,
                words=_words(segment.words),
            )
            for i, segment in enumerate(transcript.segments, start=1)
        ]
    elif isinstance(transcript, WordTranscript):
        cues = [
            CaptionCue(
                index=i,
                start_time=group[0].start,
                end_time=group[-1].end,
                text=" ".join(w.word for w in group),
                words=_words(group),
            )
            for i, group in enumerate(_group_words(transcript.words), start=1)
        ]
    elif isinstance(transcript, PlainTranscript):
        if not transcript.text or not transcript.duration:
            raise CaptionError("Transcript has no timing information")
        cues = [CaptionCue(index=1, start_time=0.0, end_time=transcript.duration, text=transcript.text)]
    else:
        raise TypeError(f"unsupported transcript type: {type(transcript).__name__}")
    return normalize_cues(cues)


def normalize_cues(cues: Iterable[CaptionCue]) -> list[CaptionCue]:
    """Sort, clamp overlaps so one cue is active at a time, drop empty cues, renumber."""
    result: list[CaptionCue] = []
    for cue in sorted(cues, key=lambda c: (c.start_time, c.end_time)):
        text = cue.text.strip()
        start = max(cue.start_time, result[-1].end_time) if result else max(0.0, cue.start_time)
        if not text or cue.end_time - start < MIN_CUE_SECONDS:
            continue
        words = tuple(w for w in cue.words if w.start_time >= start and w.end_time <= cue.end_time)
        result.append(
            CaptionCue(index=len(result) + 1, start_time=start, end_time=cue.end_time, text=text, words=words)
        )
    return result


def reconcile_corrected(raw: Sequence[CaptionCue], corrected: Sequence[CaptionCue]) -> list[CaptionCue]:
    """
    Merge corrected wording onto the raw timing.

    With the same number of cues the raw boundaries are kept and only the
    text is replaced; recorded word timings survive when the corrected text
    has the same word count. Otherwise the corrected cues are used as given.
    """
    if not corrected:
        return normalize_cues(raw)
    if len(raw) != len(corrected):
        return normalize_cues(corrected)
    merged = []
    for raw_cue, fixed in zip(raw, corrected):
        tokens = fixed.text.split()
        words = ()
        if raw_cue.words and len(raw_cue.words) == len(tokens):
            words = tuple(replace(w, word=token) for w, token in zip(raw_cue.words, tokens))
        merged.append(replace(raw_cue, text=fixed.text, words=words))
    return normalize_cues(merged)
