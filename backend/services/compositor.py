"""Remote media compositor (Cloudinary-style upload API and URL transformations).

The transformation builders are pure functions; ``CompositorClient`` wraps
the REST upload/destroy endpoints and the explicit materialise step.
"""

from __future__ import annotations

import hashlib
import logging
import re
import time
from dataclasses import dataclass
from typing import Iterable, Sequence

import httpx

from models.captions import UploadedFrame
from services.errors import MaterializationError, MaterializationTimeoutError
from services.http import ProviderClient
from services.polling import poll_until

logger = logging.getLogger(__name__)

API_BASE = "https://api.cloudinary.com/v1_1"
DELIVERY_BASE = "https://res.cloudinary.com"

OUTPUT_WIDTH = 1080
OUTPUT_HEIGHT = 1920
CLIP_NORMALIZE = f"ar_9:16,c_fill,w_{OUTPUT_WIDTH},h_{OUTPUT_HEIGHT}"
OUTPUT_FORMAT = ("f_mp4", "vc_h264", "q_auto:good")
MIX_GAIN = "e_volume:20"

# HTTP statuses meaning "derived asset is still being generated".
NOT_READY_STATUSES = (420, 423)

_TRANSFORM_SEGMENT = re.compile(r"^[a-z]{1,3}_[\w,:.\-]+$")
_VERSION_SEGMENT = re.compile(r"^v\d+$")

LOGO_GRAVITY = {
    ("top", "left"): "north_west",
    ("top", "right"): "north_east",
    ("bottom", "left"): "south_west",
    ("bottom", "right"): "south_east",
}


@dataclass(frozen=True)
class UploadedAsset:
    public_id: str
    secure_url: str
    resource_type: str
    duration: float | None = None
    format: str | None = None
    size_bytes: int | None = None


def extract_public_id(url: str) -> str:
    """
    Public id of a delivery URL.

    Strips everything up to ``/upload/``, transformation segments, the
    version segment and the file extension; folder components are kept.
    A bare id (no slashes, no host) is returned unchanged.
    """
    if not url:
        return ""
    if "/upload/" not in url:
        return url
    path = url.split("/upload/", 1)[1].split("?", 1)[0]
    segments = path.split("/")
    # transformations and the version come before the public id
    while len(segments) > 1 and (
        _VERSION_SEGMENT.match(segments[0])
        or all(_TRANSFORM_SEGMENT.match(part) for part in segments[0].split(","))
    ):
        segments.pop(0)
    segments[-1] = re.sub(r"\.\w+$", "", segments[-1])
    return "/".join(segments)


def overlay_id(public_id: str) -> str:
    """Folders are separated by ':' when an id is referenced from a layer."""
    return public_id.replace("/", ":")


def music_volume_percent(volume_db: float) -> int:
    """Convert a decibel gain to the compositor's percentage volume unit.

    The compositor scales by ``(100 + percent) / 100``; the result is clamped to
    its accepted range (-100 mutes, +400 is the maximum boost).
    """
    percent = round((10 ** (volume_db / 20) - 1) * 100)
    return max(-100, min(400, percent))


def build_assembly_transformations(
    clip_ids: Sequence[str],
    voiceover_id: str,
    music_id: str,
    total_duration: int,
    music_volume_db: float,
) -> list[str]:
    if not clip_ids:
        raise ValueError("No clips provided for video assembly")
    steps = [f"{CLIP_NORMALIZE},ac_none"]
    for clip_id in clip_ids[1:]:
        steps.append(f"l_video:{overlay_id(clip_id)},{CLIP_NORMALIZE},fl_splice,ac_none")
        steps.append("fl_layer_apply")
    steps.append(
        f"l_audio:{overlay_id(music_id)},so_0,du_{total_duration},e_loop:999,"
        f"e_volume:{music_volume_percent(music_volume_db)}"
    )
    steps.append("fl_layer_apply")
    steps.append(f"l_audio:{overlay_id(voiceover_id)},so_0,du_{total_duration}")
    steps.append("fl_layer_apply")
    steps.append(MIX_GAIN)
    return steps


def logo_gravity(position: str) -> tuple[str, int, int]:
    """Gravity and x/y inset for a logo position name such as ``corner_top_left``."""
    pos = str(position).lower()
    for (vertical, horizontal), gravity in LOGO_GRAVITY.items():
        if vertical in pos and horizontal in pos:
            return gravity, 20, 40 if vertical == "bottom" else 20
    if "center" in pos or "middle" in pos:
        return "center", 0, 0
    return "north_east", 20, 20


def build_logo_transformation(logo_public_id: str, position: str, size_percent: int) -> list[str]:
    gravity, x_offset, y_offset = logo_gravity(position)
    width = round(OUTPUT_WIDTH * size_percent / 100)
    return [
        f"l_image:{overlay_id(logo_public_id)},g_{gravity},x_{x_offset},y_{y_offset},w_{width},o_80",
        "fl_layer_apply",
    ]


def build_caption_transformations(frames: Iterable[UploadedFrame]) -> list[str]:
    steps = []
    for frame in frames:
        start = frame.timestamp
        end = frame.timestamp + frame.duration
        steps.append(f"l_{overlay_id(frame.storage_id)},so_{start:.3f},eo_{end:.3f}")
        steps.append("fl_layer_apply")
    return steps


def delivery_url(cloud_name: str, public_id: str, steps: Sequence[str] = (), *, resource_type: str = "video", extension: str = "mp4") -> str:
    path = "/".join([*steps, f"{public_id}.{extension}"])
    return f"{DELIVERY_BASE}/{cloud_name}/{resource_type}/upload/{path}"


class CompositorClient(ProviderClient):
    """Uploads, ingests, materialises and deletes assets on the compositor."""

    name = "compositor"

    def __init__(
        self,
        cloud_name: str,
        *,
        api_key: str = "",
        api_secret: str = "",
        upload_preset: str = "",
        materialize_interval: float = 5.0,
        materialize_attempts: int = 24,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(http=http)
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.upload_preset = upload_preset
        self.materialize_interval = materialize_interval
        self.materialize_attempts = materialize_attempts

    # --- URL helpers ---

    def is_own_asset(self, url: str) -> bool:
        return url.startswith(f"{DELIVERY_BASE}/{self.cloud_name}/")

    def assembly_url(
        self,
        clip_ids: Sequence[str],
        voiceover_id: str,
        music_id: str,
        total_duration: int,
        music_volume_db: float,
        *,
        logo_id: str | None = None,
        logo_position: str = "corner_top_right",
        logo_size_percent: int = 15,
    ) -> str:
        """Composition URL: clips spliced in order, music and voiceover layered, optional logo."""
        steps = build_assembly_transformations(
            clip_ids, voiceover_id, music_id, total_duration, music_volume_db
        )
        if logo_id:
            steps.extend(build_logo_transformation(logo_id, logo_position, logo_size_percent))
        steps.extend(OUTPUT_FORMAT)
        return delivery_url(self.cloud_name, clip_ids[0], steps)

    def caption_overlay_url(self, video_public_id: str, frames: Sequence[UploadedFrame]) -> str:
        """One composition URL placing every caption frame over the base video."""
        steps = build_caption_transformations(frames)
        steps.extend(OUTPUT_FORMAT)
        return delivery_url(self.cloud_name, video_public_id, steps)

    # --- REST calls ---

    def _signed_params(self, params: dict[str, str]) -> dict[str, str]:
        """Sign with the API secret when configured, else fall back to the unsigned preset."""
        if not self.api_secret:
            if not self.upload_preset:
                raise MaterializationError("Compositor credentials are not configured")
            return {**params, "upload_preset": self.upload_preset}
        signed = {**params, "timestamp": str(int(time.time()))}
        to_sign = "&".join(f"{key}={signed[key]}" for key in sorted(signed))
        signed["signature"] = hashlib.sha1(f"{to_sign}{self.api_secret}".encode()).hexdigest()
        signed["api_key"] = self.api_key
        return signed

    def _endpoint(self, resource_type: str, action: str) -> str:
        return f"{API_BASE}/{self.cloud_name}/{resource_type}/{action}"

    def _asset(self, body: dict, resource_type: str) -> UploadedAsset:
        return UploadedAsset(
            public_id=body["public_id"],
            secure_url=body["secure_url"],
            resource_type=body.get("resource_type", resource_type),
            duration=body.get("duration"),
            format=body.get("format"),
            size_bytes=body.get("bytes"),
        )

    async def upload_bytes(
        self,
        data: bytes,
        *,
        filename: str,
        resource_type: str = "image",
        public_id: str | None = None,
        folder: str | None = None,
        content_type: str = "application/octet-stream",
    ) -> UploadedAsset:
        if not data:
            raise MaterializationError(f"Refusing to upload empty file {filename}")
        params: dict[str, str] = {}
        if public_id:
            params["public_id"] = public_id
        if folder:
            params["folder"] = folder
        response = await self.http.post(
            self._endpoint(resource_type, "upload"),
            data=self._signed_params(params),
            files={"file": (filename, data, content_type)},
        )
        body = self.json_body(response, f"{resource_type} upload")
        logger.debug("[compositor] uploaded %s as %s", filename, body.get("public_id"))
        return self._asset(body, resource_type)

    async def _upload_remote(self, url: str, public_id: str, resource_type: str) -> httpx.Response:
        return await self.http.post(
            self._endpoint(resource_type, "upload"),
            data={**self._signed_params({"public_id": public_id}), "file": url},
        )

    async def upload_from_url(self, url: str, *, public_id: str, resource_type: str = "video") -> UploadedAsset:
        """Have the compositor fetch ``url`` and store it under ``public_id``."""
        response = await self._upload_remote(url, public_id, resource_type)
        return self._asset(self.json_body(response, f"{resource_type} ingest"), resource_type)

    async def ensure_asset(self, url: str, *, public_id: str, resource_type: str = "video") -> str:
        """Public id for ``url``, ingesting it first when it lives outside this cloud."""
        if self.is_own_asset(url):
            return extract_public_id(url)
        asset = await self.upload_from_url(url, public_id=public_id, resource_type=resource_type)
        return asset.public_id

    async def materialize(self, transformation_url: str, *, public_id: str) -> UploadedAsset:
        """
        Force the lazily described composition to render and store it as a plain asset.

        A "not ready" answer is retried on a fixed interval; running out of
        attempts raises MaterializationTimeoutError.
        """

        async def attempt() -> UploadedAsset | None:
            response = await self._upload_remote(transformation_url, public_id, "video")
            if response.status_code in NOT_READY_STATUSES:
                return None
            if not response.is_success:
                raise MaterializationError(
                    f"Materialization of {public_id} failed ({response.status_code}): {response.text[:500]}"
                )
            return self._asset(response.json(), "video")

        logger.info("[compositor] materializing %s", public_id)
        return await poll_until(
            attempt,
            interval=self.materialize_interval,
            max_attempts=self.materialize_attempts,
            describe=f"materialization of {public_id}",
            timeout_error=MaterializationTimeoutError,
        )

    async def destroy(self, public_id: str, *, resource_type: str = "video") -> None:
        if not self.api_secret:
            raise MaterializationError("Deleting assets requires the compositor API secret")
        response = await self.http.post(
            self._endpoint(resource_type, "destroy"),
            data=self._signed_params({"public_id": public_id}),
        )
        self.check(response, f"{resource_type} destroy")
