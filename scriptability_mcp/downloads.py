from __future__ import annotations

import logging

from .artifact_store import ArtifactDownload, ArtifactNotFound, ArtifactStore
from .jobs import JobRegistry
from .models import JobStatus

logger = logging.getLogger(__name__)


class JobNotCompleted(RuntimeError):
    def __init__(self, job_id: str, status: JobStatus) -> None:
        self.job_id = job_id
        self.status = status
        super().__init__(f"Job not completed: {job_id} ({status.value})")


class DownloadGateway:
    """
    Resolves a job id to a streamable artifact.

    Known jobs are served from their recorded locator. Unknown ids (e.g. after
    a restart) fall back to a lookup in the artifact store, which only a
    bucket-backed store can answer.
    """

    def __init__(self, registry: JobRegistry, store: ArtifactStore) -> None:
        self._registry = registry
        self._store = store

    async def open(self, job_id: str) -> ArtifactDownload:
        """
        Raises `JobNotCompleted` for a known job that has not succeeded and
        `ArtifactNotFound` when nothing can be located.
        """
        job = self._registry.get(job_id)
        if job is not None:
            if job.status != JobStatus.SUCCEEDED or not job.path:
                raise JobNotCompleted(job_id, job.status)
            return await self._store.open(job.path)

        found = await self._store.find(job_id)
        if found is None:
            raise ArtifactNotFound(job_id)
        logger.info("Serving job %s from storage lookup", job_id)
        return found
