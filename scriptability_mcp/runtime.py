from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from .artifact_store import ArtifactStore, BucketArtifactStore, LocalArtifactStore
from .config import Settings
from .downloads import DownloadGateway
from .firebase_client import get_bucket, init_firebase
from .jobs import JobCoordinator, JobRegistry, PodcastJobRunner
from .scriptability_client import ScriptAbilityClient

logger = logging.getLogger(__name__)


@dataclass
class RuntimeContext:
    """
    Process-wide collaborators for the MCP server.

    Created once in `main.py` and passed down to tools and HTTP routes.
    """

    settings: Settings
    client: ScriptAbilityClient
    registry: JobRegistry
    store: ArtifactStore
    jobs: JobCoordinator
    downloads: DownloadGateway

    async def aclose(self) -> None:
        await self.client.aclose()


def build_artifact_store(settings: Settings) -> ArtifactStore:
    if settings.output_bucket:
        init_firebase(settings)
        logger.info("Storing podcast output in gs://%s", settings.output_bucket)
        return BucketArtifactStore(
            get_bucket(settings.output_bucket),
            prefix=settings.output_object_prefix,
            public_read=settings.output_public_read,
            signed_url_expiry_seconds=settings.signed_url_expiry_seconds,
            public_base_url=settings.public_base_url,
        )
    logger.info("Storing podcast output under %s", settings.output_dir)
    return LocalArtifactStore(settings.output_dir, public_base_url=settings.public_base_url)


def build_runtime(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    store: Optional[ArtifactStore] = None,
) -> RuntimeContext:
    client = ScriptAbilityClient(settings, transport=transport)
    registry = JobRegistry()
    store = store or build_artifact_store(settings)
    runner = PodcastJobRunner(registry, client, store)
    return RuntimeContext(
        settings=settings,
        client=client,
        registry=registry,
        store=store,
        jobs=JobCoordinator(registry, runner),
        downloads=DownloadGateway(registry, store),
    )
