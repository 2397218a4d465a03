"""GCS photo storage: blob naming, uploads and signed URLs."""

import sys
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from services.gcs import (
    DEFAULT_BUCKET,
    SIGNED_URL_SECONDS,
    PhotoStorage,
    generate_signed_url,
    get_bucket_name,
    photo_blob_name,
    upload_blob,
)


@pytest.fixture
def mock_storage():
    """Patch google.cloud.storage so no real client or credentials are needed."""
    mock_blob = MagicMock()
    mock_blob.generate_signed_url.return_value = "https://storage.example.com/signed"
    mock_bucket = MagicMock()
    mock_bucket.blob.return_value = mock_blob
    mock_client = MagicMock()
    mock_client.bucket.return_value = mock_bucket
    storage = MagicMock()
    storage.Client.return_value = mock_client
    cloud = MagicMock()
    cloud.storage = storage

    with patch.dict(
        sys.modules,
        {"google": MagicMock(), "google.cloud": cloud, "google.cloud.storage": storage},
    ):
        yield mock_client, mock_bucket, mock_blob


def test_get_bucket_name_default() -> None:
    with patch.dict("os.environ", {"GCS_BUCKET": ""}, clear=False):
        assert get_bucket_name() == DEFAULT_BUCKET


def test_get_bucket_name_strips_whitespace() -> None:
    with patch.dict("os.environ", {"GCS_BUCKET": "  my-bucket  "}, clear=False):
        assert get_bucket_name() == "my-bucket"


@pytest.mark.parametrize(
    "filename, expected",
    [
        ("Living Room.JPG", "jobs/job-1/slot_03_1.jpg"),
        ("photo.webp", "jobs/job-1/slot_03_1.webp"),
        ("no_extension", "jobs/job-1/slot_03_1.jpg"),
    ],
)
def test_photo_blob_name(filename: str, expected: str) -> None:
    assert photo_blob_name("job-1", 3, 1, filename) == expected


def test_upload_blob_sets_content_type(mock_storage) -> None:
    mock_client, mock_bucket, mock_blob = mock_storage

    upload_blob("jobs/job-1/slot_00_0.jpg", b"jpeg", content_type="image/jpeg", bucket_name="media")

    mock_client.bucket.assert_called_once_with("media")
    mock_bucket.blob.assert_called_once_with("jobs/job-1/slot_00_0.jpg")
    mock_blob.upload_from_string.assert_called_once_with(b"jpeg", content_type="image/jpeg")


def test_generate_signed_url_builds_correct_parameters(mock_storage) -> None:
    _, _, mock_blob = mock_storage

    url = generate_signed_url("jobs/job-1/slot_00_0.jpg", bucket_name="media", expiration_seconds=3600)

    assert url == "https://storage.example.com/signed"
    call_kw = mock_blob.generate_signed_url.call_args[1]
    assert call_kw["method"] == "GET"
    assert call_kw["version"] == "v4"
    remaining = (call_kw["expiration"] - datetime.now(timezone.utc)).total_seconds()
    assert abs(remaining - 3600) < 5


def test_signed_url_default_lifetime_is_48h(mock_storage) -> None:
    _, _, mock_blob = mock_storage

    with patch("services.gcs.get_bucket_name", return_value=DEFAULT_BUCKET):
        generate_signed_url("jobs/job-1/slot_00_0.jpg")

    expiration = mock_blob.generate_signed_url.call_args[1]["expiration"]
    remaining = (expiration - datetime.now(timezone.utc)).total_seconds()
    assert SIGNED_URL_SECONDS == 48 * 3600
    assert abs(remaining - SIGNED_URL_SECONDS) < 5


@pytest.mark.anyio
async def test_store_photo_uploads_then_signs() -> None:
    storage = PhotoStorage(bucket_name="media", expiration_seconds=600)

    with (
        patch("services.gcs.upload_blob") as upload,
        patch("services.gcs.generate_signed_url", return_value="https://signed.example/photo") as sign,
    ):
        url = await storage.store_photo("job-1", 2, 0, "kitchen.png", b"png", "image/png")

    assert url == "https://signed.example/photo"
    upload.assert_called_once_with("jobs/job-1/slot_02_0.png", b"png", content_type="image/png", bucket_name="media")
    sign.assert_called_once_with("jobs/job-1/slot_02_0.png", bucket_name="media", expiration_seconds=600)
