"""
Background job tracking for long-running tool calls.

- `JobRegistry` owns job records.
- `PodcastJobRunner` performs one podcast generation.
- `JobCoordinator` spawns runners and supports bounded waiting.
"""

from .coordinator import JobCoordinator
from .registry import JobRegistry, JobStateError
from .runner import PODCAST_JOB_TYPE, PodcastJobRunner, SourceValidationError

__all__ = [
    "JobCoordinator",
    "JobRegistry",
    "JobStateError",
    "PODCAST_JOB_TYPE",
    "PodcastJobRunner",
    "SourceValidationError",
]
