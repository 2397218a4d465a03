from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{6})$")


@dataclass(frozen=True)
class CaptionWord:
    word: str
    start_time: float          # seconds
    end_time: float


@dataclass(frozen=True)
class CaptionCue:
    index: int
    start_time: float          # seconds
    end_time: float
    text: str
    words: tuple[CaptionWord, ...] = ()

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


@dataclass
class CaptionFrame:
    """One transparent PNG shown from ``timestamp`` for ``duration`` seconds."""

    image_bytes: bytes
    timestamp: float
    duration: float
    scale: float = 1.0
    opacity: float = 1.0


@dataclass(frozen=True)
class UploadedFrame:
    storage_id: str
    timestamp: float
    duration: float


class CaptionPosition(str, Enum):
    TOP = "top"
    MIDDLE = "middle"
    BOTTOM = "bottom"


class CaptionAnimation(str, Enum):
    NONE = "none"
    POP = "pop"
    FADE = "fade"
    KARAOKE = "karaoke"


class CaptionStyle(BaseModel):
    """
    Caption styling supplied by the owner's saved preferences.

    Keys are accepted in camelCase (as stored by the client) or snake_case.
    Unknown keys are ignored; missing keys take the defaults below.
    Colors are six-digit hex, with or without a leading '#'.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    font_family: str = Field("Arial", alias="fontFamily")
    font_size: int = Field(34, alias="fontSize", gt=0, le=400)
    font_weight: str = Field("bold", alias="fontWeight")
    font_color: str = Field("FFFFFF", alias="fontColor")
    background_color: str = Field("000000", alias="backgroundColor")
    background_opacity: int = Field(100, alias="backgroundOpacity", ge=0, le=100)
    stroke_color: str = Field("000000", alias="strokeColor")
    stroke_width: int = Field(0, alias="strokeWidth", ge=0, le=40)
    shadow_color: str = Field("000000", alias="shadowColor")
    shadow_blur: int = Field(0, alias="shadowBlur", ge=0, le=100)
    shadow_offset_x: int = Field(2, alias="shadowOffsetX")
    shadow_offset_y: int = Field(2, alias="shadowOffsetY")
    position: CaptionPosition = CaptionPosition.BOTTOM
    animation: CaptionAnimation = CaptionAnimation.NONE
    max_lines: int = Field(2, alias="maxLines", ge=1, le=6)
    uppercase: bool = False
    emoji_augmentation: bool = Field(False, alias="emojiAugmentation")
    single_word_mode: bool = Field(False, alias="singleWordMode")

    @field_validator("font_color", "background_color", "stroke_color", "shadow_color", mode="before")
    @classmethod
    def _normalize_color(cls, value: object) -> str:
        match = _HEX_COLOR.match(str(value).strip())
        if not match:
            raise ValueError(f"invalid color value: {value!r}")
        return match.group(1).upper()

    @field_validator("position", "animation", mode="before")
    @classmethod
    def _lowercase_choice(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value


def rgba(hex_color: str, alpha: int = 255) -> tuple[int, int, int, int]:
    """Six-digit hex color to an RGBA tuple."""
    return (int(hex_color[0:2], 16), int(hex_color[2:4], 16), int(hex_color[4:6], 16), alpha)


@dataclass
class RenderOptions:
    width: int = 1080
    height: int = 1920
    fps: int = 30
    fonts_dir: str | None = None
    font_cache: dict = field(default_factory=dict, repr=False)
