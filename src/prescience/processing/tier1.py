"""Tier-1 deep scanner.

Pulls a large trade sample for the busiest markets (plus anything Tier-2
promoted) and derives the full feature set: wallet profiles, fresh-wallet
excess, whale concentration, large positions, two-sided flow, veteran flow,
velocity and dampening. The features are folded into a threat score.

Markets beyond the deep-scan limit are returned as lightweight rows with
a zero threat score so the feed still lists them.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from prescience.config import Settings, get_settings
from prescience.core.cache import TTLCache
from prescience.core.constants import SAMPLE_CAP_MARGIN, SCAN_CONCURRENCY
from prescience.core.exceptions import UpstreamUnavailableError
from prescience.core.logging import get_logger
from prescience.markets.models import Market, Trade
from prescience.processing.dampening import compute_dampening
from prescience.processing.flow import analyze_flow, analyze_veteran_flow, buy_sell_imbalance
from prescience.processing.models import MarketSnapshot, ScanMeta, ScanResult
from prescience.processing.threat import ThreatInputs, compute_threat_score, threat_level
from prescience.processing.velocity import VelocityTracker
from prescience.processing.wallets import build_wallet_profiles, summarize_wallets

if TYPE_CHECKING:
    from prescience.markets.polymarket import PolymarketClient
    from prescience.processing.tier2 import Tier2Scanner

logger = get_logger(__name__)

ENGINE = "Prescience Scanner v2.0 (Tier 1 Deep Scan)"
_CACHE_KEY = "tier1"


def _base_snapshot(market: Market, now: datetime) -> MarketSnapshot:
    hours = market.hours_to_expiry(now)
    return MarketSnapshot(
        question=market.question,
        condition_id=market.condition_id,
        slug=market.slug,
        outcomes=list(market.outcomes),
        current_prices=market.current_prices,
        yes_price=market.yes_price,
        volume_24h=market.volume_24h,
        volume_total=market.volume_total,
        liquidity=market.liquidity,
        end_date=market.end_date_raw,
        hours_to_expiry=round(hours) if hours is not None and hours <= 1000 else None,
        volume_vs_liquidity=round(market.volume_24h / max(market.liquidity, 1.0), 2),
    )


def lightweight_snapshot(market: Market, now: datetime) -> MarketSnapshot:
    """Listing-only row for markets outside the deep-scan budget."""
    snapshot = _base_snapshot(market, now)
    snapshot.scan_depth = "lightweight"
    return snapshot


def analyze_market(
    market: Market,
    trades: list[Trade],
    now: datetime,
    *,
    settings: Settings | None = None,
    velocity: VelocityTracker | None = None,
) -> MarketSnapshot:
    """Full Tier-1 feature set and threat score for one market.

    With an empty trade sample only the volume- and price-derived features
    are filled in; wallet, flow and velocity features stay at zero.
    """
    settings = settings or get_settings()
    now_ts = now.timestamp()
    snapshot = _base_snapshot(market, now)

    summary = None
    veteran = None
    flow = None
    if trades:
        profiles = build_wallet_profiles(trades, market)
        summary = summarize_wallets(
            profiles,
            now_ts,
            baseline=settings.tier1_fresh_baseline,
            fresh_min_notional=settings.tier1_fresh_min_notional,
            large_position_notional=settings.large_position_notional,
        )
        direction, imbalance = buy_sell_imbalance(trades)
        flow = analyze_flow(
            market,
            trades,
            now_ts,
            dominance_margin=settings.flow_dominance_margin,
            mix_margin=settings.flow_mix_margin,
            min_notional=settings.flow_min_notional,
        )
        veteran = analyze_veteran_flow(
            market, profiles, now_ts, veteran_age_days=settings.veteran_age_days
        )
        sample_capped = len(trades) >= settings.tier1_trade_sample - SAMPLE_CAP_MARGIN

        snapshot.total_wallets = summary.total_wallets
        snapshot.total_trades = len(trades)
        snapshot.total_volume_usd = round(summary.total_volume, 2)
        snapshot.sample_capped = sample_capped
        snapshot.fresh_wallets = summary.fresh_wallet_count
        snapshot.fresh_wallet_ratio = round(summary.fresh_wallet_ratio, 3)
        snapshot.fresh_wallet_excess = round(summary.fresh_wallet_excess, 3)
        snapshot.max_wallet_dominance = round(summary.max_wallet_dominance, 3)
        snapshot.large_positions = summary.large_positions
        snapshot.large_position_ratio = round(summary.large_position_ratio, 3)
        snapshot.flow_direction = direction
        snapshot.flow_imbalance = round(abs(imbalance), 2)

        snapshot.flow_direction_v2 = flow.flow_direction_v2
        snapshot.minority_side_flow_usd = flow.minority_side_flow_usd
        snapshot.majority_side_flow_usd = flow.majority_side_flow_usd
        snapshot.minority_outcome = flow.minority_outcome
        snapshot.majority_outcome = flow.majority_outcome

        snapshot.veteran_minority_flow_score = veteran.veteran_minority_flow_score
        snapshot.veteran_note = veteran.veteran_note

        if velocity is not None:
            snapshot.velocity = velocity.compute(
                market.condition_id,
                trades,
                flow.flow_direction_v2,
                now_ts,
                sample_capped=sample_capped,
            )

    dampening = compute_dampening(
        market,
        now,
        minority_flow_usd=flow.minority_side_flow_usd if flow else None,
        thin_opposing_usd=settings.dampening_thin_opposing_usd,
    )
    snapshot.is_dampened = dampening.is_dampened
    snapshot.dampening_factor = dampening.factor
    snapshot.dampening_reason = dampening.reason

    score, components = compute_threat_score(
        ThreatInputs(
            fresh_wallet_excess=summary.fresh_wallet_excess if summary else 0.0,
            max_wallet_dominance=summary.max_wallet_dominance if summary else 0.0,
            volume_vs_liquidity=market.volume_24h / max(market.liquidity, 1.0),
            volume_24h=market.volume_24h,
            max_price=market.max_price,
            min_price=market.min_price,
            hours_to_expiry=market.hours_to_expiry(now),
            flow_direction_v2=flow.flow_direction_v2 if flow else "NEUTRAL",
            flow_dominance=flow.flow_dominance if flow else 0.0,
            large_position_ratio=summary.large_position_ratio if summary else 0.0,
            veteran_minority_flow_score=veteran.veteran_minority_flow_score if veteran else 0,
        ),
        dampening_factor=dampening.factor,
    )
    snapshot.threat_score = score
    snapshot.threat_level = threat_level(score)
    snapshot.threat_components = components

    if flow is not None and flow.flow_direction_v2 == "MINORITY_HEAVY":
        snapshot.call_side = flow.minority_outcome
    elif flow is not None and flow.majority_outcome:
        snapshot.call_side = flow.majority_outcome
    else:
        index = market.majority_index
        snapshot.call_side = market.outcomes[index] if index is not None else None
    return snapshot


class Tier1Scanner:
    """Deep scan over the highest-volume (and promoted) markets."""

    def __init__(
        self,
        client: PolymarketClient,
        settings: Settings | None = None,
        tier2: Tier2Scanner | None = None,
        velocity: VelocityTracker | None = None,
        cache: TTLCache[ScanResult] | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self._client = client
        self._settings = settings or get_settings()
        self._tier2 = tier2
        self._velocity = velocity or VelocityTracker()
        self._cache = cache or TTLCache(self._settings.tier1_cache_ttl_seconds)
        self._now = now_fn or (lambda: datetime.now(UTC))

    def cached(self) -> ScanResult | None:
        """Latest scan if still within TTL, without triggering a new one."""
        hit = self._cache.get(_CACHE_KEY)
        return hit.value if hit is not None else None

    async def scan(self, *, limit: int | None = None, force: bool = False) -> ScanResult:
        """Scan active markets.

        Raises:
            UpstreamUnavailableError: the market listing failed outright
        """
        if not force and limit is None:
            hit = self._cache.get(_CACHE_KEY)
            if hit is not None:
                cached = hit.value.model_copy(deep=True)
                cached.meta.cache_hit = True
                cached.meta.cache_age_minutes = round(hit.age_seconds / 60)
                return cached

        now = self._now()
        markets = await self._client.list_active_markets(
            limit=limit or self._settings.tier1_market_limit
        )
        if not markets and self._client.last_error:
            raise UpstreamUnavailableError(
                f"Failed to fetch markets from Polymarket API: {self._client.last_error}"
            )

        markets = [m for m in markets if not m.is_expired(now)]
        ordered = sorted(markets, key=lambda m: m.volume_24h, reverse=True)
        promoted = self._tier2.promoted_condition_ids() if self._tier2 else set()
        deep_ids = {m.condition_id for m in ordered[: self._settings.tier1_deep_scan_limit]}
        deep_ids |= {m.condition_id for m in ordered if m.condition_id in promoted}

        deep = [m for m in ordered if m.condition_id in deep_ids]
        light = [m for m in ordered if m.condition_id not in deep_ids]

        semaphore = asyncio.Semaphore(SCAN_CONCURRENCY)
        results = await asyncio.gather(*(self._analyse(m, now, semaphore) for m in deep))
        snapshots = [s for s in results if s is not None]
        failed = len(results) - len(snapshots)
        snapshots.sort(key=lambda s: s.threat_score, reverse=True)
        snapshots.extend(lightweight_snapshot(m, now) for m in light)

        result = ScanResult(
            scan=snapshots,
            meta=ScanMeta(
                engine=ENGINE,
                timestamp=now,
                markets_scanned=len(ordered),
                deep_scanned=len(deep) - failed,
                failed_markets=failed,
                dampened_markets=sum(1 for s in snapshots if s.is_dampened),
            ),
        )
        logger.info(
            "Tier-1 scan complete",
            markets=len(ordered),
            deep=len(deep),
            failed=failed,
            promoted=len(promoted),
        )
        if limit is None:
            self._cache.set(_CACHE_KEY, result)
        return result

    async def scan_slug(self, slug: str) -> MarketSnapshot | None:
        """Deep-scan a single market looked up by slug."""
        market = await self._client.get_market_by_slug(slug)
        if market is None:
            return None
        return await self._analyse(market, self._now(), asyncio.Semaphore(1))

    async def _analyse(
        self, market: Market, now: datetime, semaphore: asyncio.Semaphore
    ) -> MarketSnapshot | None:
        async with semaphore:
            try:
                trades = await self._client.get_trades(
                    market.condition_id, limit=self._settings.tier1_trade_sample
                )
                return analyze_market(
                    market, trades, now, settings=self._settings, velocity=self._velocity
                )
            except Exception as e:
                logger.debug(
                    "Tier-1 market analysis failed",
                    condition_id=market.condition_id,
                    error=str(e),
                )
                return None
