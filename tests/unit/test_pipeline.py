"""Tests for pipeline wiring (agent/pipeline.py)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from factories import make_snapshot
from prescience.agent.pipeline import build_pipeline, pipeline_lifespan, run_publish
from prescience.config import Settings
from prescience.processing.models import ScanMeta, ScanResult, VelocityResult
from prescience.publishing.publisher import PublishResult


class TestBuildPipeline:
    def test_client_follows_settings(self, settings: Settings) -> None:
        settings = settings.model_copy(
            update={"polymarket_gamma_api_url": "https://gamma.test", "upstream_retries": 0}
        )

        pipeline = build_pipeline(settings)

        assert pipeline.client.gamma_url == "https://gamma.test"
        assert pipeline.client.retries == 0
        assert pipeline.scheduler is None

    def test_components_share_state(self, settings: Settings) -> None:
        client = MagicMock()

        pipeline = build_pipeline(settings, client=client)

        assert pipeline.tier1._client is client
        assert pipeline.tier2._client is client
        assert pipeline.tier1._tier2 is pipeline.tier2
        assert pipeline.tier1._velocity is pipeline.velocity
        assert pipeline.correlations._client is client
        assert pipeline.proofs._client is client


class TestRunPublish:
    @pytest.mark.asyncio
    async def test_only_gated_candidates_reach_publisher(self, settings: Settings) -> None:
        now = datetime.now(UTC)
        strong = make_snapshot(
            slug="strong",
            flow_direction_v2="MINORITY_HEAVY",
            fresh_wallet_excess=0.2,
            velocity=VelocityResult(velocity_score=30),
            end=now + timedelta(days=2),
        )
        quiet = make_snapshot(slug="quiet", end=now + timedelta(days=2))
        pipeline = build_pipeline(settings, client=MagicMock())
        pipeline.tier1.scan = AsyncMock(  # type: ignore[method-assign]
            return_value=ScanResult(
                scan=[strong, quiet], meta=ScanMeta(engine="test", timestamp=now)
            )
        )
        pipeline.publisher.publish = AsyncMock(  # type: ignore[method-assign]
            return_value=PublishResult(post_count=1)
        )

        result = await run_publish(pipeline, dry_run=True, channel="@test")

        assert result.post_count == 1
        pipeline.tier1.scan.assert_awaited_once_with(force=True)
        candidates = pipeline.publisher.publish.await_args.args[0]
        assert [c.snapshot.slug for c in candidates] == ["strong"]
        assert pipeline.publisher.publish.await_args.kwargs == {
            "dry_run": True,
            "channel": "@test",
        }


class TestPipelineLifespan:
    @pytest.mark.asyncio
    async def test_without_scheduler(self, settings: Settings) -> None:
        async with pipeline_lifespan(settings) as pipeline:
            assert pipeline.scheduler is None

    @pytest.mark.asyncio
    async def test_scheduler_started_and_stopped(self, settings: Settings) -> None:
        settings = settings.model_copy(update={"scheduler_enabled": True})

        async with pipeline_lifespan(settings) as pipeline:
            scheduler = pipeline.scheduler
            assert scheduler is not None
            assert scheduler.running
            assert len(scheduler.get_jobs()) == 5

        assert not scheduler.running
