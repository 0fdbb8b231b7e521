from .job import Job, JobStatus, PodcastRequest

__all__ = ["Job", "JobStatus", "PodcastRequest"]
