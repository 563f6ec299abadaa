"""Synthesised news feed from a small sample of the busiest markets.

Each market with a usable trade sample becomes one item with a severity
label and a one-line headline. Items are ordered by severity, then 24h
volume.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Literal

from pydantic import Field

from prescience.core.cache import TTLCache
from prescience.core.constants import NEWS_CACHE_TTL_SECONDS, SECONDS_PER_DAY
from prescience.core.exceptions import UpstreamUnavailableError
from prescience.core.logging import get_logger
from prescience.markets.models import Market, Trade
from prescience.processing.flow import buy_sell_imbalance
from prescience.processing.models import WireModel
from prescience.processing.wallets import build_wallet_profiles, summarize_wallets

if TYPE_CHECKING:
    from prescience.markets.polymarket import PolymarketClient

logger = get_logger(__name__)

ENGINE = "Prescience News v1.0"
NEWS_MARKET_SAMPLE = 20
NEWS_TRADE_SAMPLE = 300
NEWS_MIN_TRADES = 5

Severity = Literal["low", "medium", "high", "critical"]
SEVERITY_ORDER: dict[str, int] = {"critical": 0, "high": 1, "medium": 2, "low": 3}


class NewsItem(WireModel):
    headline: str
    market: str
    slug: str = ""
    volume_24h: int = Field(default=0, alias="volume24h")
    current_odds: dict[str, float] = Field(default_factory=dict, alias="currentOdds")
    signal: str
    severity: Severity = "low"
    timestamp: datetime
    flow_direction: Literal["BUY", "SELL", "NEUTRAL"] = Field(
        default="NEUTRAL", alias="flowDirection"
    )
    fresh_wallets: int = Field(default=0, alias="freshWallets")
    large_positions: int = Field(default=0, alias="largePositions")


class NewsFeed(WireModel):
    news: list[NewsItem] = Field(default_factory=list)
    generated: datetime
    engine: str = ENGINE


def classify_severity(
    fresh: int, large: int, imbalance: float, volume_24h: float
) -> tuple[Severity, str | None]:
    """Severity label plus the signal line that justified it."""
    if fresh >= 3 and large >= 2:
        return "critical", f"{fresh} fresh wallets + {large} large positions detected"
    if fresh >= 2:
        return "high", f"{fresh} fresh wallets entered positions"
    if large >= 3 and abs(imbalance) > 0.4:
        return "high", f"{large} large positions, {round(abs(imbalance) * 100)}% flow imbalance"
    if volume_24h > 500_000:
        return "medium", f"${volume_24h / 1e6:.1f}M 24h volume"
    if abs(imbalance) > 0.3:
        side = "buy" if imbalance > 0 else "sell"
        return "medium", f"{round(abs(imbalance) * 100)}% {side} flow imbalance"
    return "low", None


def format_volume(volume: float) -> str:
    if volume >= 1e6:
        return f"${volume / 1e6:.1f}M"
    return f"${round(volume / 1000)}K"


def build_news_item(market: Market, trades: list[Trade], now: datetime) -> NewsItem | None:
    if len(trades) < NEWS_MIN_TRADES:
        return None
    now_ts = now.timestamp()
    profiles = build_wallet_profiles(trades)
    summary = summarize_wallets(
        profiles,
        now_ts,
        baseline=0.0,
        fresh_min_notional=50.0,
        large_position_notional=1000.0,
    )
    recent = [t for t in trades if t.timestamp >= now_ts - SECONDS_PER_DAY]
    direction, imbalance = buy_sell_imbalance(recent)
    volume_24h = market.volume_24h or sum(t.notional for t in recent)

    severity, signal = classify_severity(
        summary.fresh_wallet_count, summary.large_positions, imbalance, volume_24h
    )
    if signal is None:
        signal = f"{summary.total_wallets} active wallets"

    odds = market.current_prices
    volume_str = format_volume(volume_24h)
    if odds:
        name, price = max(odds.items(), key=lambda kv: kv[1])
        verb = "surges" if imbalance > 0.2 else "drops" if imbalance < -0.2 else "holds"
        headline = f'"{name}" {verb} to {round(price * 100)}% on {volume_str} new volume'
    else:
        headline = f"{volume_str} volume surge on active market"

    return NewsItem(
        headline=headline,
        market=market.question,
        slug=market.slug or "",
        volume_24h=round(volume_24h),
        current_odds=odds,
        signal=signal,
        severity=severity,
        timestamp=now,
        flow_direction=direction,
        fresh_wallets=summary.fresh_wallet_count,
        large_positions=summary.large_positions,
    )


class NewsService:
    """Builds the news feed and caches it for five minutes."""

    def __init__(
        self,
        client: PolymarketClient,
        cache: TTLCache[NewsFeed] | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self._client = client
        self._cache = cache or TTLCache(NEWS_CACHE_TTL_SECONDS)
        self._now = now_fn or (lambda: datetime.now(UTC))

    async def get_feed(self) -> NewsFeed:
        hit = self._cache.get("news")
        if hit is not None:
            return hit.value

        now = self._now()
        markets = await self._client.list_active_markets(limit=NEWS_MARKET_SAMPLE)
        if not markets and self._client.last_error:
            raise UpstreamUnavailableError(
                f"Failed to fetch markets from Polymarket API: {self._client.last_error}"
            )

        async def item_for(market: Market) -> NewsItem | None:
            try:
                trades = await self._client.get_trades(market.condition_id, NEWS_TRADE_SAMPLE)
                return build_news_item(market, trades, now)
            except Exception as e:
                logger.debug("News item failed", condition_id=market.condition_id, error=str(e))
                return None

        items = [i for i in await asyncio.gather(*(item_for(m) for m in markets)) if i]
        items.sort(key=lambda i: (SEVERITY_ORDER[i.severity], -i.volume_24h))
        feed = NewsFeed(news=items, generated=now)
        self._cache.set("news", feed)
        return feed
