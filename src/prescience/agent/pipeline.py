"""Pipeline wiring shared by the HTTP service, the scheduler and the CLI."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from prescience.core.logging import get_logger
from prescience.markets.polymarket import PolymarketClient
from prescience.processing.correlation import CorrelationService
from prescience.processing.news import NewsService
from prescience.processing.tier1 import Tier1Scanner
from prescience.processing.tier2 import Tier2Scanner
from prescience.processing.velocity import VelocityTracker
from prescience.publishing.publisher import Publisher, PublishResult, score_candidates
from prescience.tracking.proofs import ProofGenerator
from prescience.tracking.resolution import ResolutionTracker

if TYPE_CHECKING:
    from apscheduler.schedulers.asyncio import AsyncIOScheduler

    from prescience.config import Settings

logger = get_logger(__name__)


@dataclass
class Pipeline:
    """Holds the long-lived clients, scanners and caches of one process."""

    settings: Settings
    client: PolymarketClient
    velocity: VelocityTracker
    tier2: Tier2Scanner
    tier1: Tier1Scanner
    news: NewsService
    correlations: CorrelationService
    publisher: Publisher
    resolution: ResolutionTracker
    proofs: ProofGenerator
    scheduler: AsyncIOScheduler | None = None

    async def close(self) -> None:
        await self.client.close()


def build_pipeline(settings: Settings, client: PolymarketClient | None = None) -> Pipeline:
    if client is None:
        client = PolymarketClient(
            gamma_url=settings.polymarket_gamma_api_url,
            data_url=settings.polymarket_data_api_url,
            timeout=settings.upstream_timeout_seconds,
            retries=settings.upstream_retries,
            page_size=settings.upstream_page_size,
            max_requests=settings.upstream_max_requests,
            max_failed_pages=settings.upstream_max_failed_pages,
        )
    velocity = VelocityTracker()
    tier2 = Tier2Scanner(client, settings)
    return Pipeline(
        settings=settings,
        client=client,
        velocity=velocity,
        tier2=tier2,
        tier1=Tier1Scanner(client, settings, tier2=tier2, velocity=velocity),
        news=NewsService(client),
        correlations=CorrelationService(client),
        publisher=Publisher(settings),
        resolution=ResolutionTracker(client, settings),
        proofs=ProofGenerator(client, settings),
    )


async def run_publish(
    pipeline: Pipeline, *, dry_run: bool = False, channel: str | None = None
) -> PublishResult:
    """Fresh Tier-1 scan, gate, then hand the candidates to the publisher."""
    result = await pipeline.tier1.scan(force=True)
    candidates = score_candidates(result.scan, datetime.now(UTC), pipeline.settings)
    logger.info("Publish candidates scored", scanned=len(result.scan), passed=len(candidates))
    return await pipeline.publisher.publish(candidates, dry_run=dry_run, channel=channel)


@asynccontextmanager
async def pipeline_lifespan(settings: Settings) -> AsyncIterator[Pipeline]:
    """Build the pipeline, start the scheduler if enabled, and clean up on exit."""
    from prescience.agent.scheduler import create_scheduler, register_jobs

    pipeline = build_pipeline(settings)
    try:
        if settings.scheduler_enabled:
            scheduler = create_scheduler()
            register_jobs(scheduler, pipeline)
            scheduler.start()
            pipeline.scheduler = scheduler
            logger.info("Scheduler started", jobs=[job.id for job in scheduler.get_jobs()])
        yield pipeline
    finally:
        if pipeline.scheduler is not None:
            pipeline.scheduler.shutdown(wait=False)
            # AsyncIOScheduler stops on the next loop iteration
            await asyncio.sleep(0)
        await pipeline.close()
