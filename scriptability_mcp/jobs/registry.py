from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, FrozenSet, Optional

from ..models import Job, JobStatus
from ..models.job import utcnow

logger = logging.getLogger(__name__)


_ALLOWED_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING}),
    JobStatus.RUNNING: frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED}),
    JobStatus.SUCCEEDED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


class JobStateError(RuntimeError):
    """Raised when an update would move a job along an edge that does not exist."""


class JobRegistry:
    """
    In-memory store mapping job ids to job records.

    Records are replaced wholesale on every update, so a `Job` handed out by
    `get()` is a snapshot. Nothing is ever evicted.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def create(self, job_type: str) -> Job:
        now = utcnow()
        job = Job(
            id=uuid.uuid4().hex,
            type=job_type,
            status=JobStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self._jobs[job.id] = job
        return job

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def update(self, job_id: str, **fields: Any) -> Optional[Job]:
        """
        Merge `fields` into the job and refresh `updated_at`.

        Terminal jobs are sticky: the update is dropped and the stored record
        is returned unchanged.
        """
        current = self._jobs.get(job_id)
        if current is None:
            return None

        if current.status.is_terminal:
            logger.warning(
                "Ignoring update to terminal job %s (%s): %s",
                job_id,
                current.status.value,
                sorted(fields),
            )
            return current

        status = fields.get("status")
        if status is not None:
            status = JobStatus(status)
            if status != current.status and status not in _ALLOWED_TRANSITIONS[current.status]:
                raise JobStateError(
                    f"Job {job_id}: illegal transition {current.status.value} -> {status.value}"
                )
            fields["status"] = status

        fields["updated_at"] = utcnow()
        updated = current.model_copy(update=fields)
        self._jobs[job_id] = updated
        return updated
