"""
Persistence for generated podcast audio.

Two backends share one interface:
- `LocalArtifactStore` writes WAV files under an output directory.
- `BucketArtifactStore` uploads to a Firebase Storage (GCS) bucket and can
  find an artifact again by job id after a restart.

The storage SDK is synchronous, so bucket calls run in worker threads via
`anyio.to_thread`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Callable, Optional, Tuple

import anyio
from anyio import to_thread
from google.api_core import exceptions as gcs_exceptions
from google.cloud.storage import Blob, Bucket

logger = logging.getLogger(__name__)

AUDIO_CONTENT_TYPE = "audio/wav"
CHUNK_SIZE = 64 * 1024


def now_timestamp() -> str:
    return datetime.now().strftime("%Y%m%d-%H%M%S")


def output_filename() -> str:
    return f"output-{now_timestamp()}.wav"


@dataclass
class StoredArtifact:
    locator: str
    download_url: Optional[str] = None
    signed_url: Optional[str] = None


@dataclass
class ArtifactDownload:
    """An artifact ready to be streamed: a filename plus an async chunk source."""

    filename: str
    chunks: Callable[[], AsyncIterator[bytes]]


class ArtifactNotFound(LookupError):
    pass


class ArtifactStore:
    """Base class; subclasses implement `save`, `open` and (optionally) `find`."""

    def __init__(self, public_base_url: Optional[str] = None) -> None:
        self._public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def resolve_download(self, job_id: str) -> Optional[str]:
        """Stable download route for `job_id`, when a public base URL is configured."""
        if not self._public_base_url:
            return None
        return f"{self._public_base_url}/files/medcast/{job_id}"

    async def save(
        self,
        job_id: str,
        data: bytes,
        output_dir: Optional[str] = None,
    ) -> StoredArtifact:
        raise NotImplementedError

    async def open(self, locator: str) -> ArtifactDownload:
        raise NotImplementedError

    async def find(self, job_id: str) -> Optional[ArtifactDownload]:
        return None


class LocalArtifactStore(ArtifactStore):
    def __init__(self, output_dir: str, public_base_url: Optional[str] = None) -> None:
        super().__init__(public_base_url)
        self._output_dir = output_dir

    async def save(
        self,
        job_id: str,
        data: bytes,
        output_dir: Optional[str] = None,
    ) -> StoredArtifact:
        base = anyio.Path(os.path.abspath(output_dir or self._output_dir))
        await base.mkdir(parents=True, exist_ok=True)
        # Job id keeps concurrent jobs finishing in the same second apart.
        target = base / f"output-{now_timestamp()}-{job_id}.wav"
        await target.write_bytes(data)
        logger.info("Saved artifact for job %s to %s (%d bytes)", job_id, target, len(data))
        return StoredArtifact(locator=str(target), download_url=self.resolve_download(job_id))

    async def open(self, locator: str) -> ArtifactDownload:
        path = anyio.Path(locator)
        if not await path.is_file():
            raise ArtifactNotFound(locator)

        async def chunks() -> AsyncIterator[bytes]:
            async with await anyio.open_file(locator, "rb") as fh:
                while True:
                    chunk = await fh.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    yield chunk

        return ArtifactDownload(filename=path.name, chunks=chunks)


def parse_gs_uri(uri: str) -> Tuple[str, str]:
    """Split `gs://bucket/key` into `(bucket, key)`."""
    if not uri.startswith("gs://"):
        raise ValueError(f"Not a gs:// URI: {uri}")
    bucket, _, key = uri[len("gs://"):].partition("/")
    if not bucket or not key:
        raise ValueError(f"Malformed gs:// URI: {uri}")
    return bucket, key


class BucketArtifactStore(ArtifactStore):
    def __init__(
        self,
        bucket: Bucket,
        prefix: str = "medcast",
        public_read: bool = False,
        signed_url_expiry_seconds: int = 3600,
        public_base_url: Optional[str] = None,
    ) -> None:
        super().__init__(public_base_url)
        self._bucket = bucket
        self._prefix = prefix.strip("/")
        self._public_read = public_read
        self._signed_url_expiry = timedelta(seconds=signed_url_expiry_seconds)

    def _job_prefix(self, job_id: str) -> str:
        return f"{self._prefix}/{job_id}/" if self._prefix else f"{job_id}/"

    def _make_public(self, blob: Blob) -> Optional[str]:
        try:
            blob.make_public()
        except gcs_exceptions.GoogleAPICallError as exc:
            # Uniform bucket-level access or public access prevention rejects ACLs.
            logger.warning("Could not make %s public: %s", blob.name, exc)
            return None
        return blob.public_url

    def _signed_url(self, blob: Blob) -> Optional[str]:
        try:
            return blob.generate_signed_url(
                version="v4",
                expiration=self._signed_url_expiry,
                method="GET",
            )
        except Exception as exc:
            # ADC user credentials cannot sign; the gateway route still works.
            logger.warning("Could not sign URL for %s: %s", blob.name, exc)
            return None

    def _save_sync(self, job_id: str, data: bytes) -> StoredArtifact:
        key = self._job_prefix(job_id) + output_filename()
        blob = self._bucket.blob(key)
        blob.upload_from_string(data, content_type=AUDIO_CONTENT_TYPE)
        logger.info("Uploaded artifact for job %s to gs://%s/%s", job_id, self._bucket.name, key)

        public_url = self._make_public(blob) if self._public_read else None
        return StoredArtifact(
            locator=f"gs://{self._bucket.name}/{key}",
            download_url=self.resolve_download(job_id) or public_url,
            signed_url=self._signed_url(blob),
        )

    async def save(
        self,
        job_id: str,
        data: bytes,
        output_dir: Optional[str] = None,
    ) -> StoredArtifact:
        return await to_thread.run_sync(self._save_sync, job_id, data)

    def _download(self, blob: Blob) -> ArtifactDownload:
        async def chunks() -> AsyncIterator[bytes]:
            reader: Any = await to_thread.run_sync(blob.open, "rb")
            try:
                while True:
                    chunk = await to_thread.run_sync(reader.read, CHUNK_SIZE)
                    if not chunk:
                        break
                    yield chunk
            finally:
                await to_thread.run_sync(reader.close)

        return ArtifactDownload(filename=blob.name.rsplit("/", 1)[-1], chunks=chunks)

    async def open(self, locator: str) -> ArtifactDownload:
        try:
            bucket_name, key = parse_gs_uri(locator)
        except ValueError:
            raise ArtifactNotFound(locator) from None
        if bucket_name != self._bucket.name:
            raise ArtifactNotFound(locator)
        blob = self._bucket.blob(key)
        if not await to_thread.run_sync(blob.exists):
            raise ArtifactNotFound(locator)
        return self._download(blob)

    def _find_sync(self, job_id: str) -> Optional[Blob]:
        for blob in self._bucket.list_blobs(prefix=self._job_prefix(job_id)):
            if not blob.name.endswith("/"):
                return blob
        return None

    async def find(self, job_id: str) -> Optional[ArtifactDownload]:
        blob = await to_thread.run_sync(self._find_sync, job_id)
        if blob is None:
            return None
        return self._download(blob)
