"""Tests for the synthesised news feed."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from factories import NOW, make_market, make_trade
from prescience.core.exceptions import UpstreamUnavailableError
from prescience.markets.models import Trade
from prescience.processing.news import NewsService, build_news_item, classify_severity


def _critical_trades() -> list[Trade]:
    fresh = [make_trade(f"0xfresh{i}", notional=100.0) for i in range(3)]
    whales = [make_trade(f"0xwhale{i}", notional=2000.0, age_days=30) for i in range(2)]
    return fresh + whales


def _quiet_trades() -> list[Trade]:
    return [make_trade(f"0xold{i}", notional=100.0, age_days=30) for i in range(5)]


class TestClassifySeverity:
    @pytest.mark.parametrize(
        ("fresh", "large", "imbalance", "volume", "severity", "signal"),
        [
            (3, 2, 0.0, 0.0, "critical", "3 fresh wallets + 2 large positions detected"),
            (2, 0, 0.0, 0.0, "high", "2 fresh wallets entered positions"),
            (0, 3, -0.5, 0.0, "high", "3 large positions, 50% flow imbalance"),
            (0, 0, 0.0, 600_000.0, "medium", "$0.6M 24h volume"),
            (0, 0, -0.35, 1000.0, "medium", "35% sell flow imbalance"),
            (1, 1, 0.1, 1000.0, "low", None),
        ],
    )
    def test_levels(
        self,
        fresh: int,
        large: int,
        imbalance: float,
        volume: float,
        severity: str,
        signal: str | None,
    ) -> None:
        assert classify_severity(fresh, large, imbalance, volume) == (severity, signal)


class TestBuildNewsItem:
    def test_critical_item(self) -> None:
        item = build_news_item(make_market(), _critical_trades(), NOW)

        assert item is not None
        assert item.severity == "critical"
        assert item.fresh_wallets == 3
        assert item.large_positions == 2
        assert item.flow_direction == "BUY"
        assert item.headline == '"No" surges to 70% on $1K new volume'
        assert item.to_wire()["currentOdds"] == {"Yes": 0.3, "No": 0.7}

    def test_quiet_item(self) -> None:
        item = build_news_item(make_market(), _quiet_trades(), NOW)

        assert item is not None
        assert item.severity == "low"
        assert item.signal == "5 active wallets"
        assert "holds" in item.headline

    def test_too_few_trades(self) -> None:
        assert build_news_item(make_market(), _quiet_trades()[:4], NOW) is None


def _fake_client(markets, *, last_error=None) -> MagicMock:
    client = MagicMock()
    client.list_active_markets = AsyncMock(return_value=markets)
    client.last_error = last_error
    return client


class TestNewsService:
    @pytest.mark.asyncio
    async def test_feed_ordered_by_severity_then_volume(self) -> None:
        markets = [
            make_market(condition_id="quiet-big", slug="quiet-big", volume_24h=9000.0),
            make_market(condition_id="quiet-small", slug="quiet-small", volume_24h=2000.0),
            make_market(condition_id="hot", slug="hot", volume_24h=500.0),
        ]
        client = _fake_client(markets)

        async def trades(condition_id: str, limit: int) -> list[Trade]:
            return _critical_trades() if condition_id == "hot" else _quiet_trades()

        client.get_trades = AsyncMock(side_effect=trades)
        service = NewsService(client, now_fn=lambda: NOW)

        feed = await service.get_feed()

        assert [i.slug for i in feed.news] == ["hot", "quiet-big", "quiet-small"]
        assert feed.generated == NOW

    @pytest.mark.asyncio
    async def test_feed_is_cached(self) -> None:
        client = _fake_client([make_market()])
        client.get_trades = AsyncMock(return_value=_quiet_trades())
        service = NewsService(client, now_fn=lambda: NOW)

        await service.get_feed()
        await service.get_feed()

        assert client.list_active_markets.await_count == 1

    @pytest.mark.asyncio
    async def test_upstream_failure_raises(self) -> None:
        service = NewsService(_fake_client([], last_error="HTTP 502"), now_fn=lambda: NOW)

        with pytest.raises(UpstreamUnavailableError):
            await service.get_feed()
