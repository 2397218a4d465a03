"""Render styled caption text onto transparent 9:16 PNG frames with Pillow.

Draw order per line: background box, stroke outline, drop shadow, fill.
Animated cues produce a short burst of frames followed by one static frame.
"""

from __future__ import annotations

import io
import logging
import math
from pathlib import Path
from typing import Sequence

from PIL import Image, ImageDraw, ImageFilter, ImageFont

from models.captions import (
    CaptionAnimation,
    CaptionCue,
    CaptionFrame,
    CaptionPosition,
    CaptionStyle,
    CaptionWord,
    RenderOptions,
    rgba,
)
from services.errors import CaptionError
from services.srt import split_cue_into_words

logger = logging.getLogger(__name__)

MAX_TEXT_WIDTH_RATIO = 0.9
LINE_HEIGHT_RATIO = 1.3
BOX_PADDING_X = 20
BOX_EXTRA_HEIGHT = 10
POP_MIN_SCALE = 0.8
KARAOKE_HIGHLIGHT = "FFD400"

POSITION_RATIO = {
    CaptionPosition.TOP: 0.15,
    CaptionPosition.MIDDLE: 0.5,
    CaptionPosition.BOTTOM: 0.85,
}

# Burst length in seconds for whole-cue and single-word rendering.
CUE_ANIMATION_SECONDS = {CaptionAnimation.POP: 0.2, CaptionAnimation.FADE: 0.3}
WORD_ANIMATION_SECONDS = {CaptionAnimation.POP: 0.15, CaptionAnimation.FADE: 0.2}

FontType = ImageFont.FreeTypeFont | ImageFont.ImageFont


def _font_candidates(fonts_dir: str, family: str, weight: str) -> list[Path]:
    directory = Path(fonts_dir)
    if not directory.is_dir():
        return []
    wanted = family.lower().replace(" ", "")
    bold = weight.lower() in ("bold", "700", "800", "900", "black", "extrabold", "semibold", "600")
    matches = []
    for path in sorted(directory.iterdir()):
        if path.suffix.lower() not in (".ttf", ".otf"):
            continue
        stem = path.stem.lower().replace(" ", "").replace("_", "").replace("-", "")
        if not stem.startswith(wanted):
            continue
        is_bold = "bold" in stem or stem in (f"{wanted}bd", f"{wanted}b")
        matches.append((is_bold != bold, len(stem), path))
    return [path for _, _, path in sorted(matches)]


def load_font(style: CaptionStyle, size: int, options: RenderOptions) -> FontType:
    """Font for the style's family/weight at ``size`` px, cached on the render options."""
    cache_key = (style.font_family, style.font_weight, size)
    cached = options.font_cache.get(cache_key)
    if cached is not None:
        return cached
    font: FontType | None = None
    if options.fonts_dir:
        for path in _font_candidates(options.fonts_dir, style.font_family, style.font_weight):
            try:
                font = ImageFont.truetype(str(path), size=size)
                break
            except OSError:
                logger.warning("[captions] could not load font file %s", path)
    if font is None:
        try:
            font = ImageFont.truetype(f"{style.font_family}.ttf", size=size)
        except OSError:
            font = ImageFont.load_default(size=size)
    options.font_cache[cache_key] = font
    return font


def measure(draw: ImageDraw.ImageDraw, text: str, font: FontType) -> float:
    if not text:
        return 0.0
    return float(draw.textlength(text, font=font))


def wrap_text(draw: ImageDraw.ImageDraw, text: str, font: FontType, max_width: float, max_lines: int) -> list[str]:
    """Greedy word wrap; lines beyond ``max_lines`` are dropped."""
    lines: list[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if current and measure(draw, candidate, font) > max_width:
            lines.append(current)
            current = word
            if len(lines) >= max_lines:
                current = ""
                break
        else:
            current = candidate
    if current and len(lines) < max_lines:
        lines.append(current)
    return lines


def anchor_y(position: CaptionPosition, height: int) -> float:
    return height * POSITION_RATIO.get(position, POSITION_RATIO[CaptionPosition.BOTTOM])


def animation_state(animation: CaptionAnimation, progress: float) -> tuple[float, float]:
    """(scale, opacity) for an animation at ``progress`` in [0, 1]."""
    progress = max(0.0, min(1.0, progress))
    if animation is CaptionAnimation.POP:
        return POP_MIN_SCALE + (1.0 - POP_MIN_SCALE) * progress, 1.0
    if animation is CaptionAnimation.FADE:
        return 1.0, progress
    return 1.0, 1.0


def render_caption_image(
    text: str,
    style: CaptionStyle,
    options: RenderOptions,
    *,
    scale: float = 1.0,
    opacity: float = 1.0,
    highlight_words: int = 0,
    highlight_color: str = KARAOKE_HIGHLIGHT,
) -> bytes:
    """
    Draw one caption frame and return it as PNG bytes.

    ``scale`` shrinks the text block around its anchor (pop), ``opacity``
    multiplies the alpha channel (fade) and ``highlight_words`` recolors
    the first N words (karaoke).
    """
    display_text = text.upper() if style.uppercase else text
    font_size = max(1, round(style.font_size * scale))
    font = load_font(style, font_size, options)

    frame = Image.new("RGBA", (options.width, options.height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(frame)
    lines = wrap_text(draw, display_text, font, options.width * MAX_TEXT_WIDTH_RATIO, style.max_lines)
    if not lines:
        return _png(frame)

    line_height = font_size * LINE_HEIGHT_RATIO
    center_y = anchor_y(style.position, options.height)
    top = center_y - len(lines) * line_height / 2
    stroke = max(0, round(style.stroke_width * scale))

    placements = []
    for index, line in enumerate(lines):
        width = measure(draw, line, font)
        placements.append(((options.width - width) / 2, top + index * line_height + line_height / 2, line, width))

    if style.background_opacity > 0:
        fill = rgba(style.background_color, round(255 * style.background_opacity / 100))
        padding = BOX_PADDING_X * scale
        box_height = line_height + BOX_EXTRA_HEIGHT * scale
        for x, y, _, width in placements:
            draw.rectangle(
                (x - padding, y - box_height / 2, x + width + padding, y + box_height / 2),
                fill=fill,
            )

    if stroke > 0:
        for x, y, line, _ in placements:
            draw.text((x, y), line, font=font, fill=rgba(style.stroke_color), anchor="lm",
                      stroke_width=stroke, stroke_fill=rgba(style.stroke_color))

    if style.shadow_blur > 0:
        shadow = Image.new("RGBA", frame.size, (0, 0, 0, 0))
        shadow_draw = ImageDraw.Draw(shadow)
        for x, y, line, _ in placements:
            shadow_draw.text((x + style.shadow_offset_x, y + style.shadow_offset_y), line,
                             font=font, fill=rgba(style.shadow_color), anchor="lm")
        shadow = shadow.filter(ImageFilter.GaussianBlur(style.shadow_blur / 2))
        frame = Image.alpha_composite(frame, shadow)
        draw = ImageDraw.Draw(frame)

    remaining = highlight_words
    for x, y, line, _ in placements:
        draw.text((x, y), line, font=font, fill=rgba(style.font_color), anchor="lm")
        if remaining > 0:
            words = line.split()
            prefix = " ".join(words[:remaining])
            draw.text((x, y), prefix, font=font, fill=rgba(highlight_color), anchor="lm")
            remaining -= len(words)

    if opacity < 1.0:
        alpha = frame.getchannel("A").point(lambda value: round(value * opacity))
        frame.putalpha(alpha)
    return _png(frame)


def _png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG", optimize=False)
    return buffer.getvalue()


def burst_frame_count(seconds: float, fps: int) -> int:
    # rounding first keeps e.g. 0.2 s at 30 fps at exactly six frames
    return max(1, math.ceil(round(seconds * fps, 6)))


def _animated_frames(
    text: str,
    start: float,
    end: float,
    style: CaptionStyle,
    options: RenderOptions,
    animation_seconds: float,
) -> list[CaptionFrame]:
    frames = []
    count = burst_frame_count(animation_seconds, options.fps)
    for i in range(count):
        timestamp = start + i / options.fps
        if timestamp >= end:
            break
        scale, opacity = animation_state(style.animation, (i + 1) / count)
        frames.append(
            CaptionFrame(
                image_bytes=render_caption_image(text, style, options, scale=scale, opacity=opacity),
                timestamp=timestamp,
                duration=min(1 / options.fps, end - timestamp),
                scale=scale,
                opacity=opacity,
            )
        )
    # the static frame takes over exactly where the last burst frame ends
    burst_end = start + count / options.fps
    if end > burst_end:
        frames.append(
            CaptionFrame(
                image_bytes=render_caption_image(text, style, options),
                timestamp=burst_end,
                duration=end - burst_end,
            )
        )
    return frames


def render_cue_frames(cue: CaptionCue, style: CaptionStyle, options: RenderOptions) -> list[CaptionFrame]:
    """Frames for one whole cue."""
    if not cue.text.strip():
        raise CaptionError(f"Cue {cue.index} has no text")
    animation = style.animation
    if animation is CaptionAnimation.KARAOKE:
        # progressive highlight: one frame per spoken word
        return [
            CaptionFrame(
                image_bytes=render_caption_image(cue.text, style, options, highlight_words=i + 1),
                timestamp=word.start_time,
                duration=word.end_time - word.start_time,
            )
            for i, word in enumerate(split_cue_into_words(cue))
            if word.end_time > word.start_time
        ]
    if animation in CUE_ANIMATION_SECONDS:
        return _animated_frames(
            cue.text, cue.start_time, cue.end_time, style, options, CUE_ANIMATION_SECONDS[animation]
        )
    return [
        CaptionFrame(
            image_bytes=render_caption_image(cue.text, style, options),
            timestamp=cue.start_time,
            duration=cue.duration,
        )
    ]


def render_word_frames(words: Sequence[CaptionWord], style: CaptionStyle, options: RenderOptions) -> list[CaptionFrame]:
    """Frames for single-word mode: each word shown on its own."""
    frames: list[CaptionFrame] = []
    for word in words:
        duration = word.end_time - word.start_time
        if duration <= 0:
            continue
        if style.animation in WORD_ANIMATION_SECONDS:
            frames.extend(
                _animated_frames(
                    word.word, word.start_time, word.end_time, style, options,
                    WORD_ANIMATION_SECONDS[style.animation],
                )
            )
            continue
        highlight = 1 if style.animation is CaptionAnimation.KARAOKE else 0
        frames.append(
            CaptionFrame(
                image_bytes=render_caption_image(word.word, style, options, highlight_words=highlight),
                timestamp=word.start_time,
                duration=duration,
            )
        )
    return frames
