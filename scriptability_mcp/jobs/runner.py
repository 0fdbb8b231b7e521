from __future__ import annotations

import logging
import mimetypes
import os
from typing import Any, Dict, List

import anyio
import httpx

from ..artifact_store import ArtifactStore
from ..models import JobStatus, PodcastRequest
from ..scriptability_client import (
    ScriptAbilityClient,
    UploadFile,
    UpstreamHTTPError,
    UpstreamTimeout,
)
from .registry import JobRegistry

logger = logging.getLogger(__name__)

PODCAST_JOB_TYPE = "podcast-generation"

MAX_SOURCE_FILES = 10
MAX_FILE_BYTES = 5 * 1024 * 1024
MAX_TOTAL_BYTES = 10 * 1024 * 1024
ALLOWED_EXTENSIONS = (".txt", ".md", ".pdf", ".docx")


class SourceValidationError(ValueError):
    """Source materials broke one of the upload limits."""


def check_source_paths(paths: List[str]) -> None:
    """Checks that need no I/O: file count and extension allow-list."""
    if len(paths) > MAX_SOURCE_FILES:
        raise SourceValidationError(f"Too many files (max {MAX_SOURCE_FILES}).")
    for p in paths:
        if not p.lower().endswith(ALLOWED_EXTENSIONS):
            raise SourceValidationError(f"Unsupported file type: {p}")


async def load_source_files(paths: List[str]) -> List[UploadFile]:
    """
    Validate sizes and read every source file into memory.

    Nothing is read until all sizes have been checked.
    """
    check_source_paths(paths)

    total = 0
    for p in paths:
        stats = await anyio.Path(os.path.abspath(p)).stat()
        total += stats.st_size
        if stats.st_size > MAX_FILE_BYTES:
            raise SourceValidationError(f"File too large (>5MB): {p}")
        if total > MAX_TOTAL_BYTES:
            raise SourceValidationError("Total attachment size exceeds 10MB.")

    uploads: List[UploadFile] = []
    for p in paths:
        absolute = anyio.Path(os.path.abspath(p))
        content_type = mimetypes.guess_type(absolute.name)[0] or "application/octet-stream"
        uploads.append(
            UploadFile(
                filename=absolute.name,
                content=await absolute.read_bytes(),
                content_type=content_type,
            )
        )
    return uploads


class PodcastJobRunner:
    """
    Executes one podcast generation job end to end.

    `run()` never raises: every outcome ends in exactly one terminal update
    of the job record.
    """

    def __init__(
        self,
        registry: JobRegistry,
        client: ScriptAbilityClient,
        store: ArtifactStore,
    ) -> None:
        self._registry = registry
        self._client = client
        self._store = store

    async def run(self, job_id: str, request: PodcastRequest) -> None:
        self._registry.update(job_id, status=JobStatus.RUNNING)
        logger.info("Job %s running", job_id)

        try:
            outcome = await self._execute(job_id, request)
        except SourceValidationError as exc:
            outcome = self._failure(str(exc))
        except UpstreamHTTPError as exc:
            outcome = self._failure(exc.describe())
        except UpstreamTimeout as exc:
            outcome = self._failure(str(exc))
        except httpx.HTTPError as exc:
            outcome = self._failure(f"Request failed: {exc}")
        except OSError as exc:
            outcome = self._failure(f"Cannot read source file: {exc}")
        except Exception as exc:
            logger.exception("Job %s crashed", job_id)
            outcome = self._failure(str(exc) or exc.__class__.__name__)

        job = self._registry.update(job_id, **outcome)
        if job is None:
            return
        if job.status == JobStatus.FAILED:
            logger.warning("Job %s failed: %s", job_id, job.error)
        else:
            logger.info("Job %s succeeded", job_id)

    @staticmethod
    def _failure(message: str) -> Dict[str, Any]:
        return {"status": JobStatus.FAILED, "error": message}

    async def _execute(self, job_id: str, request: PodcastRequest) -> Dict[str, Any]:
        uploads = await load_source_files(request.files)
        audio = await self._client.generate_podcast(uploads, text=request.text, ndc=request.ndc)
        artifact = await self._store.save(job_id, audio, output_dir=request.output_dir)
        return {
            "status": JobStatus.SUCCEEDED,
            "path": artifact.locator,
            "download_url": artifact.download_url,
            "signed_url": artifact.signed_url,
        }
