from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

from ..models import Job, JobStatus, PodcastRequest
from .registry import JobRegistry
from .runner import PODCAST_JOB_TYPE, PodcastJobRunner

logger = logging.getLogger(__name__)


class JobCoordinator:
    """
    Starts podcast jobs in the background and lets callers wait on them.

    Each job gets one `asyncio.Task`, held here until it finishes. Waiting is
    purely observational: it never cancels or restarts a runner.
    """

    def __init__(self, registry: JobRegistry, runner: PodcastJobRunner) -> None:
        self._registry = registry
        self._runner = runner
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def registry(self) -> JobRegistry:
        return self._registry

    def in_flight(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    def submit(self, request: PodcastRequest) -> Job:
        """Create a job and start its runner without waiting for it."""
        job = self._registry.create(PODCAST_JOB_TYPE)
        task = asyncio.get_running_loop().create_task(
            self._runner.run(job.id, request),
            name=f"podcast-job-{job.id}",
        )
        self._tasks[job.id] = task
        task.add_done_callback(lambda t, job_id=job.id: self._on_done(job_id, t))
        logger.info("Submitted job %s", job.id)
        return job

    def _on_done(self, job_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(job_id, None)
        if task.cancelled():
            logger.warning("Job %s task was cancelled", job_id)
            self._fail_unfinished(job_id, "Job was cancelled.")
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Job %s task raised", job_id, exc_info=exc)
            self._fail_unfinished(job_id, str(exc) or exc.__class__.__name__)

    def _fail_unfinished(self, job_id: str, message: str) -> None:
        job = self._registry.get(job_id)
        if job is None or job.status.is_terminal:
            return
        if job.status == JobStatus.PENDING:
            self._registry.update(job_id, status=JobStatus.RUNNING)
        self._registry.update(job_id, status=JobStatus.FAILED, error=message)

    async def wait_for(self, job_id: str, max_wait_ms: float) -> Optional[Job]:
        """
        Return the job record, waiting up to `max_wait_ms` for its runner.

        A timeout is not an error; the caller gets whatever state the job is
        in at that moment.
        """
        task = self._tasks.get(job_id)
        if task is not None and not task.done() and max_wait_ms > 0:
            await asyncio.wait({task}, timeout=max_wait_ms / 1000.0)
        return self._registry.get(job_id)

    async def drain(self) -> None:
        """Wait for every in-flight job to finish."""
        pending = [t for t in self._tasks.values() if not t.done()]
        if pending:
            await asyncio.wait(pending)
