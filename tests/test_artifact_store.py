import io
import re
from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as gcs_exceptions

from scriptability_mcp.artifact_store import (
    ArtifactNotFound,
    BucketArtifactStore,
    LocalArtifactStore,
    parse_gs_uri,
)


def _bucket(name="podcasts"):
    bucket = MagicMock()
    bucket.name = name
    blobs = {}

    def _blob(key):
        if key not in blobs:
            blob = MagicMock()
            blob.name = key
            blob.public_url = f"https://storage.googleapis.com/{name}/{key}"
            blob.generate_signed_url.return_value = f"https://signed.example/{key}"
            blobs[key] = blob
        return blobs[key]

    bucket.blob.side_effect = _blob
    return bucket


async def _read_all(download):
    return b"".join([chunk async for chunk in download.chunks()])


@pytest.mark.asyncio
async def test_bucket_save_uploads_under_job_prefix():
    bucket = _bucket()
    store = BucketArtifactStore(bucket, prefix="medcast", signed_url_expiry_seconds=600)

    artifact = await store.save("job1", b"RIFF")

    assert artifact.locator.startswith("gs://podcasts/medcast/job1/output-")
    assert artifact.locator.endswith(".wav")
    [key] = [call.args[0] for call in bucket.blob.call_args_list]
    blob = bucket.blob(key)
    blob.upload_from_string.assert_called_once_with(b"RIFF", content_type="audio/wav")
    blob.make_public.assert_not_called()
    blob.generate_signed_url.assert_called_once_with(
        version="v4", expiration=timedelta(seconds=600), method="GET"
    )
    assert artifact.signed_url == f"https://signed.example/{key}"
    assert artifact.download_url is None


@pytest.mark.asyncio
async def test_public_read_success_exposes_public_url():
    bucket = _bucket()
    store = BucketArtifactStore(bucket, public_read=True)

    artifact = await store.save("job1", b"RIFF")

    assert artifact.download_url.startswith("https://storage.googleapis.com/podcasts/medcast/job1/")


@pytest.mark.asyncio
async def test_public_read_rejected_by_policy_falls_back_to_signed_url():
    bucket = _bucket()
    store = BucketArtifactStore(bucket, public_read=True)
    original_blob = bucket.blob.side_effect

    def _blob(key):
        blob = original_blob(key)
        blob.make_public.side_effect = gcs_exceptions.BadRequest("uniform bucket-level access")
        return blob

    bucket.blob.side_effect = _blob

    artifact = await store.save("job1", b"RIFF")

    assert artifact.download_url is None
    assert artifact.signed_url.startswith("https://signed.example/")


@pytest.mark.asyncio
async def test_signing_failure_is_not_fatal():
    bucket = _bucket()
    original_blob = bucket.blob.side_effect

    def _blob(key):
        blob = original_blob(key)
        blob.generate_signed_url.side_effect = AttributeError("no private key")
        return blob

    bucket.blob.side_effect = _blob
    store = BucketArtifactStore(bucket, public_base_url="https://mcp.example.com")

    artifact = await store.save("job1", b"RIFF")

    assert artifact.signed_url is None
    assert artifact.download_url == "https://mcp.example.com/files/medcast/job1"


@pytest.mark.asyncio
async def test_find_lists_by_job_prefix_and_streams():
    bucket = _bucket()
    blob = bucket.blob("medcast/job9/output-20250101-000000.wav")
    blob.open.return_value = io.BytesIO(b"abc" * 100)
    bucket.list_blobs.return_value = iter([blob])
    store = BucketArtifactStore(bucket)

    download = await store.find("job9")

    bucket.list_blobs.assert_called_once_with(prefix="medcast/job9/")
    assert download.filename == "output-20250101-000000.wav"
    assert await _read_all(download) == b"abc" * 100


@pytest.mark.asyncio
async def test_find_returns_none_when_prefix_is_empty():
    bucket = _bucket()
    bucket.list_blobs.return_value = iter([])

    assert await BucketArtifactStore(bucket).find("job9") is None


@pytest.mark.asyncio
async def test_open_missing_object():
    bucket = _bucket()
    bucket.blob("medcast/job1/output.wav").exists.return_value = False
    store = BucketArtifactStore(bucket)

    with pytest.raises(ArtifactNotFound):
        await store.open("gs://podcasts/medcast/job1/output.wav")
    with pytest.raises(ArtifactNotFound):
        await store.open("gs://other-bucket/medcast/job1/output.wav")


@pytest.mark.asyncio
async def test_local_store_round_trip(tmp_path):
    store = LocalArtifactStore(str(tmp_path / "out"))

    artifact = await store.save("job1", b"RIFF-data")
    download = await store.open(artifact.locator)

    assert Path(artifact.locator).parent == tmp_path / "out"
    assert download.filename == Path(artifact.locator).name
    assert await _read_all(download) == b"RIFF-data"
    assert await store.find("job1") is None


@pytest.mark.asyncio
async def test_local_filenames_carry_job_id(tmp_path):
    store = LocalArtifactStore(str(tmp_path))

    first = await store.save("job-a", b"a")
    second = await store.save("job-b", b"b")

    assert re.fullmatch(r"output-\d{8}-\d{6}-job-a\.wav", Path(first.locator).name)
    assert first.locator != second.locator
    assert Path(first.locator).read_bytes() == b"a"


@pytest.mark.asyncio
async def test_local_store_open_missing(tmp_path):
    store = LocalArtifactStore(str(tmp_path))

    with pytest.raises(ArtifactNotFound):
        await store.open(str(tmp_path / "nope.wav"))


def test_parse_gs_uri():
    assert parse_gs_uri("gs://bucket/a/b.wav") == ("bucket", "a/b.wav")
    with pytest.raises(ValueError):
        parse_gs_uri("/tmp/a.wav")
    with pytest.raises(ValueError):
        parse_gs_uri("gs://bucket-only")
