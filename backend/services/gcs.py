"""GCS uploads and signed URLs for listing photos handed to providers."""

import asyncio
import os
from datetime import datetime, timedelta, timezone

DEFAULT_BUCKET = "listing-reels-media"
SIGNED_URL_SECONDS = 48 * 3600  # 48 hours


def get_bucket_name() -> str:
    """Bucket name from env or default."""
    return os.environ.get("GCS_BUCKET", "").strip() or DEFAULT_BUCKET


def photo_blob_name(job_id: str, slot_index: int, position: int, filename: str) -> str:
    """Object path for one listing photo, e.g. "jobs/<id>/slot_00_1.jpg"."""
    extension = os.path.splitext(filename)[1].lower() or ".jpg"
    return f"jobs/{job_id}/slot_{slot_index:02d}_{position}{extension}"


def upload_blob(
    blob_name: str,
    data: bytes,
    *,
    content_type: str = "application/octet-stream",
    bucket_name: str | None = None,
) -> None:
    """
    Upload raw bytes to a GCS object.

    :param blob_name: Object path in bucket, e.g. "jobs/abc123/slot_00_0.jpg"
    :param data: Raw bytes to upload
    :param content_type: MIME type stored on the object
    :param bucket_name: GCS bucket; default from GCS_BUCKET env or "listing-reels-media"
    """
    from google.cloud import storage

    bucket_name = bucket_name or get_bucket_name()
    client = storage.Client()
    bucket = client.bucket(bucket_name)
    blob = bucket.blob(blob_name)
    blob.upload_from_string(data, content_type=content_type)


def generate_signed_url(
    blob_name: str,
    *,
    bucket_name: str | None = None,
    expiration_seconds: int = SIGNED_URL_SECONDS,
    method: str = "GET",
) -> str:
    """
    Generate a v4 signed URL for a GCS object.

    Uses default credentials (GOOGLE_APPLICATION_CREDENTIALS or ADC).
    Providers fetch the listing photos through these URLs, so the default
    lifetime comfortably outlasts a full pipeline run.
    """
    from google.cloud import storage

    bucket_name = bucket_name or get_bucket_name()
    client = storage.Client()
    bucket = client.bucket(bucket_name)
    blob = bucket.blob(blob_name)
    expiration = datetime.now(timezone.utc) + timedelta(seconds=expiration_seconds)
    return blob.generate_signed_url(
        expiration=expiration,
        method=method,
        version="v4",
    )


class PhotoStorage:
    """Durable storage for source photos; the clip stage depends on this seam."""

    def __init__(self, bucket_name: str | None = None, expiration_seconds: int = SIGNED_URL_SECONDS) -> None:
        self.bucket_name = bucket_name
        self.expiration_seconds = expiration_seconds

    async def store_photo(
        self,
        job_id: str,
        slot_index: int,
        position: int,
        filename: str,
        data: bytes,
        content_type: str,
    ) -> str:
        """Upload one photo and return a signed URL providers can fetch."""
        blob_name = photo_blob_name(job_id, slot_index, position, filename)
        await asyncio.to_thread(
            upload_blob,
            blob_name,
            data,
            content_type=content_type,
            bucket_name=self.bucket_name,
        )
        return await asyncio.to_thread(
            generate_signed_url,
            blob_name,
            bucket_name=self.bucket_name,
            expiration_seconds=self.expiration_seconds,
        )
