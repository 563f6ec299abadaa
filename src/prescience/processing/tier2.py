"""Tier-2 broad scanner: a cheap anomaly sweep over every active market.

Per market: volume-vs-liquidity spike, an optional 50-trade fresh-wallet
fingerprint, extreme pricing and expiry rush. Markets scoring at least
``tier2_emit_threshold`` form the anomaly index; the strongest ones are
flagged for promotion to the Tier-1 deep scan.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from prescience.config import Settings, get_settings
from prescience.core.cache import TTLCache
from prescience.core.constants import SCAN_CONCURRENCY, TIER2_NEXT_SCAN_HOURS
from prescience.core.exceptions import UpstreamUnavailableError
from prescience.core.logging import get_logger
from prescience.markets.models import Market, Trade
from prescience.processing.models import AnomalyEntry, Tier2Meta, Tier2Result
from prescience.processing.wallets import build_wallet_profiles, summarize_wallets

if TYPE_CHECKING:
    from prescience.markets.polymarket import PolymarketClient

logger = get_logger(__name__)

ENGINE = "Prescience Index v1.0 (Tier 2 Broad Scan)"
_CACHE_KEY = "tier2"


def volume_vs_liquidity(market: Market) -> float:
    return market.volume_24h / max(market.liquidity, 1.0)


def is_tier2_candidate(market: Market, now: datetime, min_volume_24h: float) -> bool:
    """Markets with almost no volume or already past expiry are skipped."""
    return market.volume_24h >= min_volume_24h and not market.is_expired(now)


def score_tier2_market(
    market: Market,
    trades: list[Trade],
    now: datetime,
    settings: Settings | None = None,
) -> AnomalyEntry | None:
    """Score one market; ``None`` when it is skipped or below the emit threshold."""
    s = settings or get_settings()
    if not is_tier2_candidate(market, now, s.tier2_min_volume_24h):
        return None

    score = 0
    flags: list[str] = []
    promote = False

    ratio = volume_vs_liquidity(market)
    if ratio > s.tier2_volume_spike_ratio:
        score += s.tier2_volume_spike_points
        flags.append("volume_spike")
        if ratio > s.tier2_volume_spike_promote_ratio:
            promote = True

    summary = None
    if len(trades) >= s.tier2_min_trades_for_wallets:
        profiles = build_wallet_profiles(trades)
        summary = summarize_wallets(
            profiles,
            now.timestamp(),
            baseline=s.tier2_fresh_baseline,
            fresh_min_notional=s.tier2_fresh_min_notional,
        )
        if summary.fresh_wallet_excess > s.tier2_fresh_surge_excess:
            score += s.tier2_fresh_surge_points
            flags.append("fresh_wallet_surge")
            promote = True
        if summary.max_wallet_dominance > s.tier2_whale_dominance:
            score += s.tier2_whale_points
            flags.append("whale_concentration")
            promote = True
        if summary.coordinated_fresh:
            score += s.tier2_coordinated_fresh_points
            flags.append("coordinated_fresh_wallets")

    max_price, min_price = market.max_price, market.min_price
    if (
        max_price is not None
        and min_price is not None
        and (max_price > s.tier2_extreme_price_high or min_price < s.tier2_extreme_price_low)
        and market.volume_24h > s.tier2_extreme_price_min_volume
    ):
        score += s.tier2_extreme_price_points
        flags.append("extreme_pricing")

    hours = market.hours_to_expiry(now)
    if (
        hours is not None
        and hours < s.tier2_expiry_rush_hours
        and market.volume_24h > s.tier2_expiry_rush_min_volume
    ):
        score += s.tier2_expiry_rush_points
        flags.append("expiry_rush")

    if score < s.tier2_emit_threshold:
        return None

    entry = AnomalyEntry(
        question=market.question,
        condition_id=market.condition_id,
        slug=market.slug,
        anomaly_score=score,
        anomaly_flags=flags,
        promote_to_tier1=promote,
        volume_24h=market.volume_24h,
        volume_total=market.volume_total,
        liquidity=market.liquidity,
        end_date=market.end_date_raw,
        hours_to_expiry=round(hours) if hours is not None and hours <= 1000 else None,
        current_prices=market.current_prices,
        volume_vs_liquidity_ratio=round(ratio, 2),
    )
    if summary is not None:
        entry.fresh_wallet_count = summary.fresh_wallet_count
        entry.fresh_wallet_excess = round(summary.fresh_wallet_excess, 3)
        entry.max_wallet_dominance = round(summary.max_wallet_dominance, 3)
        entry.avg_fresh_wallet_age_days = (
            round(summary.avg_fresh_wallet_age_days, 1)
            if summary.avg_fresh_wallet_age_days is not None
            else None
        )
    return entry


class Tier2Scanner:
    """Runs the broad scan and caches the whole result set."""

    def __init__(
        self,
        client: PolymarketClient,
        settings: Settings | None = None,
        cache: TTLCache[Tier2Result] | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self._client = client
        self._settings = settings or get_settings()
        self._cache = cache or TTLCache(self._settings.tier2_cache_ttl_seconds)
        self._now = now_fn or (lambda: datetime.now(UTC))

    async def scan(self, *, force: bool = False) -> Tier2Result:
        """Return the anomaly index, served from cache when fresh.

        Raises:
            UpstreamUnavailableError: the market listing failed outright
        """
        if not force:
            hit = self._cache.get(_CACHE_KEY)
            if hit is not None:
                cached = hit.value.model_copy(deep=True)
                cached.meta.cache_hit = True
                cached.meta.cache_age_minutes = round(hit.age_seconds / 60)
                return cached

        result = await self._run()
        self._cache.set(_CACHE_KEY, result)
        return result

    async def _run(self) -> Tier2Result:
        now = self._now()
        markets = await self._client.list_active_markets(limit=self._settings.tier2_market_limit)
        if not markets and self._client.last_error:
            raise UpstreamUnavailableError(
                f"Failed to fetch markets from Polymarket API: {self._client.last_error}"
            )

        semaphore = asyncio.Semaphore(SCAN_CONCURRENCY)

        async def analyse(market: Market) -> AnomalyEntry | None:
            if not is_tier2_candidate(market, now, self._settings.tier2_min_volume_24h):
                return None
            async with semaphore:
                try:
                    trades = await self._client.get_trades(
                        market.condition_id, limit=self._settings.tier2_trade_sample
                    )
                    return score_tier2_market(market, trades, now, self._settings)
                except Exception as e:
                    logger.debug(
                        "Tier-2 market analysis failed",
                        condition_id=market.condition_id,
                        error=str(e),
                    )
                    return None

        results = await asyncio.gather(*(analyse(m) for m in markets))
        anomalies = [r for r in results if r is not None]
        anomalies.sort(key=lambda a: a.anomaly_score, reverse=True)
        promoted = sum(1 for a in anomalies if a.promote_to_tier1)

        logger.info(
            "Tier-2 scan complete",
            markets_processed=len(markets),
            anomalies=len(anomalies),
            promoted=promoted,
        )
        return Tier2Result(
            index=anomalies,
            meta=Tier2Meta(
                markets_processed=len(markets),
                anomalies_detected=len(anomalies),
                tier1_promotion_candidates=promoted,
                timestamp=now,
                engine=ENGINE,
                next_scan_in_hours=TIER2_NEXT_SCAN_HOURS,
                cache_hit=False,
            ),
        )

    def promoted_condition_ids(self) -> set[str]:
        """Condition ids promoted by the cached Tier-2 result (empty when cold)."""
        hit = self._cache.get(_CACHE_KEY)
        if hit is None:
            return set()
        return {a.condition_id for a in hit.value.index if a.promote_to_tier1}
