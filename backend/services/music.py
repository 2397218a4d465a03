"""Owner-uploaded background music."""

from __future__ import annotations

import asyncio
import logging
from pathlib import PurePath

from db.tables import CustomMusicModel
from services import store
from services.compositor import CompositorClient
from services.errors import MusicUploadError

logger = logging.getLogger(__name__)

ALLOWED_FORMATS = ("mp3", "wav", "m4a", "aac", "ogg")


def music_format(filename: str) -> str:
    return PurePath(filename).suffix.lower().lstrip(".")


async def upload_custom_music(
    compositor: CompositorClient,
    owner_id: str,
    filename: str,
    data: bytes,
    *,
    title: str | None = None,
    max_bytes: int = 10 * 1024 * 1024,
    max_seconds: int = 60,
) -> CustomMusicModel:
    """
    Store an owner's track on the compositor and record it.

    Tracks longer than ``max_seconds`` are deleted again and rejected.
    """
    if not data:
        raise MusicUploadError("Music file is empty")
    if len(data) > max_bytes:
        raise MusicUploadError(f"Music file is larger than {max_bytes // (1024 * 1024)} MB")
    extension = music_format(filename)
    if extension not in ALLOWED_FORMATS:
        raise MusicUploadError(f"Unsupported music format {extension!r}; use one of {', '.join(ALLOWED_FORMATS)}")

    asset = await compositor.upload_bytes(
        data,
        filename=filename,
        resource_type="video",
        folder=f"custom_music/{owner_id}",
        content_type=f"audio/{'mpeg' if extension == 'mp3' else extension}",
    )
    duration = asset.duration or 0.0
    if duration <= 0 or duration > max_seconds:
        logger.info("[music] rejecting %s (%.1fs), deleting %s", filename, duration, asset.public_id)
        await compositor.destroy(asset.public_id, resource_type="video")
        if duration <= 0:
            raise MusicUploadError("Could not determine the track duration")
        raise MusicUploadError(f"Track is {duration:.0f}s long; the maximum is {max_seconds}s")

    return await asyncio.to_thread(
        store.add_custom_music,
        owner_id=owner_id,
        filename=filename,
        url=asset.secure_url,
        storage_id=asset.public_id,
        duration_seconds=round(duration),
        file_size_bytes=asset.size_bytes or len(data),
        format=asset.format or extension,
        title=(title or "").strip() or PurePath(filename).stem,
    )
