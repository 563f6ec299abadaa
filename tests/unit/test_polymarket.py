"""Tests for market parsing and the Polymarket client."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from factories import NOW, make_market, market_payload
from prescience.markets.models import parse_market, parse_timestamp, parse_trade
from prescience.markets.polymarket import PolymarketClient


class TestParseMarket:
    def test_parses_json_string_arrays(self) -> None:
        market = parse_market(market_payload())

        assert market is not None
        assert market.outcomes == ["Yes", "No"]
        assert market.outcome_prices == [0.3, 0.7]
        assert market.volume_24h == 1000.0
        assert market.volume_total == 50_000.0
        assert market.liquidity == 10_000.0
        assert market.end_date == parse_timestamp("2026-03-11T12:00:00Z")

    def test_malformed_prices_degrade_to_empty(self) -> None:
        market = parse_market(market_payload(outcomePrices="[0.3, oops"))

        assert market is not None
        assert market.outcomes == []
        assert market.outcome_prices == []
        assert market.current_prices == {}
        assert market.yes_price is None

    def test_mismatched_arrays_degrade_to_empty(self) -> None:
        market = parse_market(market_payload(outcomePrices='["0.3", "0.5", "0.2"]'))

        assert market is not None
        assert market.outcome_prices == []

    def test_missing_condition_id_is_skipped(self) -> None:
        assert parse_market(market_payload(conditionId=None)) is None

    def test_numeric_strings_and_missing_fields(self) -> None:
        market = parse_market(market_payload(volume24hr="12.5", liquidityNum=None))

        assert market is not None
        assert market.volume_24h == 12.5
        assert market.liquidity == 0.0


class TestMarketProperties:
    def test_yes_price_and_majority(self) -> None:
        market = make_market(outcome_prices=[0.3, 0.7])

        assert market.yes_price == 0.3
        assert market.majority_index == 1
        assert market.is_binary

    def test_yes_price_falls_back_to_first_outcome(self) -> None:
        market = make_market(outcomes=["Up", "Down"], outcome_prices=[0.6, 0.4])

        assert market.yes_price == 0.6
        assert market.majority_index == 0

    def test_key_falls_back_to_condition_id(self) -> None:
        assert make_market(slug=None).key == "0xcond1"
        assert make_market().key == "fed-cut-march"

    def test_expiry(self) -> None:
        market = make_market()

        assert market.hours_to_expiry(NOW) == pytest.approx(240.0)
        assert not market.is_expired(NOW)


class TestParseTrade:
    def test_parses_trade(self) -> None:
        trade = parse_trade(
            {
                "proxyWallet": "0xABC",
                "side": "buy",
                "size": "200",
                "price": "0.25",
                "timestamp": 1772366400,
                "outcome": "Yes",
                "outcomeIndex": "0",
            }
        )

        assert trade is not None
        assert trade.wallet == "0xabc"
        assert trade.side == "BUY"
        assert trade.notional == 50.0
        assert trade.outcome_index == 0

    def test_rejects_trade_without_wallet(self) -> None:
        assert parse_trade({"side": "BUY", "size": 1, "price": 0.5}) is None

    def test_outcome_index_fallback(self) -> None:
        market = make_market()
        trade = parse_trade({"proxyWallet": "0x1", "side": "SELL", "outcomeIndex": 1})

        assert trade is not None
        assert trade.resolve_outcome_index(market) == 1

    @pytest.mark.parametrize("timestamp", ["inf", "nan", "-inf", float("inf")])
    def test_non_finite_timestamp_is_skipped(self, timestamp: object) -> None:
        assert parse_trade({"proxyWallet": "0x1", "side": "BUY", "timestamp": timestamp}) is None

    def test_non_finite_numbers_degrade(self) -> None:
        trade = parse_trade(
            {
                "proxyWallet": "0x1",
                "side": "BUY",
                "timestamp": 1772366400,
                "size": "inf",
                "price": "nan",
                "outcomeIndex": float("inf"),
            }
        )

        assert trade is not None
        assert trade.notional == 0.0
        assert trade.outcome_index is None

    def test_non_string_outcome_is_ignored(self) -> None:
        market = make_market()
        trade = parse_trade(
            {"proxyWallet": "0x1", "side": "BUY", "outcome": 1, "outcomeIndex": 1}
        )

        assert trade is not None
        assert trade.outcome is None
        assert trade.resolve_outcome_index(market) == 1
        assert market.outcome_index(1) is None  # type: ignore[arg-type]


def _client_with(handler: Any, **kwargs: Any) -> PolymarketClient:
    client = PolymarketClient(
        gamma_url="https://gamma.test",
        data_url="https://data.test",
        timeout=1.0,
        retries=0,
        page_size=2,
        max_requests=5,
        max_failed_pages=2,
        **kwargs,
    )
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


class TestPolymarketClient:
    @pytest.mark.asyncio
    async def test_paginates_dedups_and_keeps_upstream_order(self) -> None:
        pages = {
            "0": [
                market_payload(conditionId="a", volume24hr=10),
                market_payload(conditionId="b", volume24hr=30),
            ],
            "2": [
                market_payload(conditionId="b", volume24hr=30),
                market_payload(conditionId="c", volume24hr=20),
            ],
            "4": [market_payload(conditionId="d", volume24hr=5)],
        }

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/markets"
            assert request.url.params["order"] == "volume24hr"
            assert request.url.params["ascending"] == "false"
            return httpx.Response(200, json=pages[request.url.params["offset"]])

        async with _client_with(handler) as client:
            markets = await client.list_active_markets(limit=10)

        assert [m.condition_id for m in markets] == ["a", "b", "c", "d"]
        assert client.last_error is None

    @pytest.mark.asyncio
    async def test_respects_limit(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            offset = int(request.url.params["offset"])
            return httpx.Response(
                200,
                json=[market_payload(conditionId=f"m{offset + i}") for i in range(2)],
            )

        async with _client_with(handler) as client:
            markets = await client.list_active_markets(limit=3)

        assert len(markets) == 3

    @pytest.mark.asyncio
    async def test_upstream_failure_returns_empty_and_records_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, json={"error": "unavailable"})

        async with _client_with(handler) as client:
            markets = await client.list_active_markets(limit=10)

        assert markets == []
        assert client.last_error is not None
        assert "503" in client.last_error

    @pytest.mark.asyncio
    async def test_transport_error_is_recorded(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client_with(handler) as client:
            markets = await client.list_active_markets(limit=10)

        assert markets == []
        assert client.last_error is not None
        assert "ConnectError" in client.last_error

    @pytest.mark.asyncio
    async def test_get_trades(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/trades"
            assert request.url.params["market"] == "0xcond1"
            assert request.url.params["limit"] == "50"
            return httpx.Response(
                200,
                json=[
                    {"proxyWallet": "0x1", "side": "BUY", "size": 10, "price": 0.5, "timestamp": 1},
                    {"side": "BUY", "size": 10, "price": 0.5},
                ],
            )

        async with _client_with(handler) as client:
            trades = await client.get_trades("0xcond1", limit=50)

        assert len(trades) == 1
        assert trades[0].notional == 5.0

    @pytest.mark.asyncio
    async def test_get_trades_failure_returns_empty(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        async with _client_with(handler) as client:
            assert await client.get_trades("0xcond1") == []

    @pytest.mark.asyncio
    async def test_trades_are_cached(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, json=[])

        async with _client_with(handler) as client:
            await client.get_trades("0xcond1", limit=10)
            await client.get_trades("0xcond1", limit=10)

        assert calls == 1

    @pytest.mark.asyncio
    async def test_get_market_by_slug(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["slug"] == "fed-cut-march"
            return httpx.Response(200, json=[market_payload(closed=True, active=False)])

        async with _client_with(handler) as client:
            market = await client.get_market_by_slug("fed-cut-march")

        assert market is not None
        assert market.closed
        assert not market.active

    @pytest.mark.asyncio
    async def test_get_market_by_slug_not_found(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[])

        async with _client_with(handler) as client:
            assert await client.get_market_by_slug("missing") is None
