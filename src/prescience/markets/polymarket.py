"""Polymarket REST client for market listings and trade samples.

Two read-only APIs are used:
- Gamma (``/markets``): market discovery, prices, volumes, metadata
- Data (``/trades``): recent fills per market

Contract towards the scanners: every method returns a finite sequence (or
``None`` for single lookups) and never raises. Transport or parse failures
are logged and recorded in ``last_error`` so callers can tell an empty venue
from an unreachable one.
"""

from __future__ import annotations

from dataclasses import dataclass, field as dataclass_field
from typing import Any

import httpx

from prescience.config import get_settings
from prescience.core.cache import TTLCache
from prescience.core.constants import (
    MARKET_LIST_CACHE_TTL_SECONDS,
    SLUG_CACHE_TTL_SECONDS,
    TRADES_CACHE_TTL_SECONDS,
)
from prescience.core.logging import get_logger
from prescience.markets.models import Market, Trade, parse_market, parse_trade

logger = get_logger(__name__)


@dataclass
class PolymarketClient:
    """Client for the Polymarket Gamma and Data APIs."""

    gamma_url: str = dataclass_field(
        default_factory=lambda: get_settings().polymarket_gamma_api_url
    )
    data_url: str = dataclass_field(default_factory=lambda: get_settings().polymarket_data_api_url)
    timeout: float = dataclass_field(
        default_factory=lambda: get_settings().upstream_timeout_seconds
    )
    retries: int = dataclass_field(default_factory=lambda: get_settings().upstream_retries)
    page_size: int = dataclass_field(default_factory=lambda: get_settings().upstream_page_size)
    max_requests: int = dataclass_field(
        default_factory=lambda: get_settings().upstream_max_requests
    )
    max_failed_pages: int = dataclass_field(
        default_factory=lambda: get_settings().upstream_max_failed_pages
    )
    use_cache: bool = True

    last_error: str | None = dataclass_field(default=None, init=False)
    _client: httpx.AsyncClient | None = dataclass_field(default=None, init=False, repr=False)
    _markets_cache: TTLCache[list[Market]] = dataclass_field(
        default_factory=lambda: TTLCache(MARKET_LIST_CACHE_TTL_SECONDS), init=False, repr=False
    )
    _trades_cache: TTLCache[list[Trade]] = dataclass_field(
        default_factory=lambda: TTLCache(TRADES_CACHE_TTL_SECONDS), init=False, repr=False
    )
    _slug_cache: TTLCache[Market] = dataclass_field(
        default_factory=lambda: TTLCache(SLUG_CACHE_TTL_SECONDS), init=False, repr=False
    )

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Accept": "application/json"},
                transport=httpx.AsyncHTTPTransport(retries=self.retries),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> PolymarketClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _get_json(self, url: str, params: dict[str, Any]) -> Any:
        """GET a JSON document; returns ``None`` and records the error on failure."""
        client = self._get_client()
        try:
            response = await client.get(url, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            self.last_error = f"HTTP {e.response.status_code} from {url}"
            logger.error(
                "Polymarket API error",
                url=url,
                status=e.response.status_code,
                error=str(e),
            )
        except httpx.RequestError as e:
            self.last_error = f"{type(e).__name__}: {e}"
            logger.error("Polymarket request failed", url=url, error=str(e))
        except ValueError as e:
            self.last_error = f"Invalid JSON from {url}"
            logger.error("Polymarket returned invalid JSON", url=url, error=str(e))
        return None

    async def list_active_markets(self, limit: int = 1000) -> list[Market]:
        """List active markets in upstream order (requested by 24h volume), deduplicated.

        Pages through ``/markets`` until ``limit`` markets are collected, a short
        page is returned, the request budget is spent, or too many pages failed.
        """
        cache_key = f"active:{limit}"
        if self.use_cache:
            hit = self._markets_cache.get(cache_key)
            if hit is not None:
                return list(hit.value)

        self.last_error = None
        url = f"{self.gamma_url.rstrip('/')}/markets"
        seen: set[str] = set()
        markets: list[Market] = []
        offset = 0
        requests_made = 0
        failed_pages = 0

        while len(markets) < limit and requests_made < self.max_requests:
            requests_made += 1
            page = await self._get_json(
                url,
                {
                    "active": "true",
                    "closed": "false",
                    "archived": "false",
                    "order": "volume24hr",
                    "ascending": "false",
                    "limit": self.page_size,
                    "offset": offset,
                },
            )
            if page is None or not isinstance(page, list):
                failed_pages += 1
                if page is not None:
                    self.last_error = "Unexpected market listing payload"
                if failed_pages >= self.max_failed_pages:
                    break
                offset += self.page_size
                continue

            for raw in page:
                if not isinstance(raw, dict):
                    continue
                market = parse_market(raw)
                if market is None or market.condition_id in seen:
                    continue
                seen.add(market.condition_id)
                markets.append(market)

            if len(page) < self.page_size:
                break
            offset += self.page_size

        markets = markets[:limit]
        logger.debug(
            "Fetched active markets",
            count=len(markets),
            requests=requests_made,
            failed_pages=failed_pages,
        )
        if markets and self.use_cache:
            self._markets_cache.set(cache_key, markets)
        return list(markets)

    async def get_trades(self, condition_id: str, limit: int = 300) -> list[Trade]:
        """Most recent trades for a market (newest first, as the API returns them)."""
        cache_key = f"{condition_id}:{limit}"
        if self.use_cache:
            hit = self._trades_cache.get(cache_key)
            if hit is not None:
                return list(hit.value)

        url = f"{self.data_url.rstrip('/')}/trades"
        payload = await self._get_json(url, {"market": condition_id, "limit": limit})
        if not isinstance(payload, list):
            return []

        trades = [t for t in (parse_trade(r) for r in payload if isinstance(r, dict)) if t]
        if self.use_cache:
            self._trades_cache.set(cache_key, trades)
        return trades

    async def get_market_by_slug(self, slug: str) -> Market | None:
        """Look up a single market by slug (open or closed)."""
        if self.use_cache:
            hit = self._slug_cache.get(slug)
            if hit is not None:
                return hit.value

        url = f"{self.gamma_url.rstrip('/')}/markets"
        payload = await self._get_json(url, {"slug": slug})
        if not isinstance(payload, list) or not payload:
            return None
        market = parse_market(payload[0]) if isinstance(payload[0], dict) else None
        if market is not None and self.use_cache and not market.closed:
            self._slug_cache.set(slug, market)
        return market
