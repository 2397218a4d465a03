from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from models.job import MusicPreference


class PropertyDetails(BaseModel):
    """Listing fields the narration is allowed to mention."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    title: str = ""
    price: str = ""
    location: str = ""
    size: str = ""
    beds: str = ""
    baths: str = ""
    floor: str = ""
    extras: str = ""


class PhotoGroupMode(str, Enum):
    SINGLE = "single"                 # one image, pan/zoom
    KEYFRAME_PAIR = "keyframe_pair"   # start and end keyframes


@dataclass(frozen=True)
class PhotoImage:
    filename: str
    content_type: str
    data: bytes = field(repr=False)


@dataclass(frozen=True)
class PhotoGroup:
    mode: PhotoGroupMode
    images: tuple[PhotoImage, ...]


@dataclass(frozen=True)
class GenerationRequest:
    job_id: str
    owner_id: str
    details: PropertyDetails
    photo_groups: tuple[PhotoGroup, ...]

    @property
    def total_images(self) -> int:
        return sum(len(group.images) for group in self.photo_groups)


class OwnerSettings(BaseModel):
    """Owner's saved preferences, snapshotted at pipeline start."""

    model_config = ConfigDict(extra="ignore")

    voice_id: str = "Kore-flash"
    voice_language_code: str = "en-US"
    voice_style_instructions: str | None = None
    logo_url: str | None = None
    logo_position: str = "corner_top_right"
    logo_size_percent: int = Field(15, ge=1, le=100)
    captions_enabled: bool = False
    caption_style: dict = Field(default_factory=dict)
    music_preference: MusicPreference = MusicPreference.AUTO_GENERATE
    selected_custom_music_id: str | None = None
    music_volume_db: float = -8.0
