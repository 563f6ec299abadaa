"""Centralized job scheduler for the periodic pipeline stages."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from prescience.core.logging import get_logger
from prescience.scorecard.aggregator import run_scorecard

if TYPE_CHECKING:
    from prescience.agent.pipeline import Pipeline

logger = get_logger(__name__)


def create_scheduler() -> AsyncIOScheduler:
    """Create a new scheduler instance."""
    return AsyncIOScheduler(timezone="UTC")


async def tier2_job(pipeline: Pipeline) -> None:
    """Refresh the Tier-2 broad scan (feeds Tier-1 promotion)."""
    try:
        result = await pipeline.tier2.scan(force=True)
        logger.info(
            "Tier-2 job complete",
            markets_processed=result.meta.markets_processed,
            anomalies=result.meta.anomalies_detected,
        )
    except Exception:
        logger.exception("Tier-2 job failed")


async def publish_job(pipeline: Pipeline) -> None:
    """Deep scan and publish up to the daily quota."""
    from prescience.agent.pipeline import run_publish

    try:
        result = await run_publish(pipeline)
        logger.info("Publish job complete", posted=result.post_count, reason=result.reason)
    except Exception:
        logger.exception("Publish job failed")


async def resolution_job(pipeline: Pipeline) -> None:
    """Write receipts for published signals whose markets have resolved."""
    try:
        result = await pipeline.resolution.run()
        logger.info("Resolution job complete", checked=result.checked, resolved=result.resolved)
    except Exception:
        logger.exception("Resolution job failed")


async def proofs_job(pipeline: Pipeline) -> None:
    """Refresh live proofs for open calls."""
    try:
        result = await pipeline.proofs.run()
        logger.info(
            "Proofs job complete", proofs=result.total_proofs, notable=result.notable_count
        )
    except Exception:
        logger.exception("Proofs job failed")


async def scorecard_job(pipeline: Pipeline) -> None:
    """Rebuild scorecard.json from the post log and receipts."""
    try:
        await asyncio.to_thread(run_scorecard, pipeline.settings)
    except Exception:
        logger.exception("Scorecard job failed")


def register_jobs(scheduler: AsyncIOScheduler, pipeline: Pipeline) -> None:
    now = datetime.now(UTC)
    scheduler.add_job(
        tier2_job,
        IntervalTrigger(hours=2),
        args=[pipeline],
        id="tier2_scan",
        max_instances=1,
        misfire_grace_time=None,
        next_run_time=now + timedelta(seconds=30),
    )
    scheduler.add_job(
        publish_job,
        IntervalTrigger(hours=1),
        args=[pipeline],
        id="signal_publisher",
        max_instances=1,
        misfire_grace_time=None,
    )
    scheduler.add_job(
        resolution_job,
        IntervalTrigger(hours=6),
        args=[pipeline],
        id="resolution_tracker",
        max_instances=1,
    )
    scheduler.add_job(
        proofs_job,
        IntervalTrigger(minutes=30),
        args=[pipeline],
        id="proof_generator",
        max_instances=1,
        next_run_time=now + timedelta(seconds=45),
    )
    scheduler.add_job(
        scorecard_job,
        IntervalTrigger(minutes=30),
        args=[pipeline],
        id="scorecard_sync",
        max_instances=1,
        next_run_time=now + timedelta(seconds=60),
    )
