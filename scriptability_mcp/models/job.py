from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


class Job(BaseModel):
    """
    One tracked invocation of a long-running generation task.

    Field names are snake_case in Python and camelCase on the wire.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: str
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")
    path: Optional[str] = Field(
        default=None,
        description="Artifact locator (local path or gs:// URI), set on success.",
    )
    download_url: Optional[str] = Field(default=None, alias="downloadUrl")
    signed_url: Optional[str] = Field(default=None, alias="signedUrl")
    error: Optional[str] = Field(
        default=None,
        description="Human-readable failure message, set on failure.",
    )

    @property
    def url(self) -> Optional[str]:
        return self.download_url or self.signed_url

    def to_descriptor(self) -> Dict[str, Any]:
        descriptor = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        if self.url:
            descriptor["url"] = self.url
        return descriptor


class PodcastRequest(BaseModel):
    """Source materials for one podcast generation job."""

    files: List[str] = Field(default_factory=list, description="Local source file paths.")
    text: str = ""
    ndc: str = ""
    output_dir: Optional[str] = Field(
        default=None,
        description="Directory for the WAV output when storing locally.",
    )

    @property
    def is_empty(self) -> bool:
        return not self.files and not self.text and not self.ndc
