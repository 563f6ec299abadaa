"""Cross-market correlation: the same wallets trading several markets at once.

Wallets active in two or more markets inside a look-back window link those
markets. Market pairs sharing at least ``min_shared_wallets`` wallets are
merged into clusters with a union-find; each cluster reads as one thesis
expressed across markets (e.g. strike + oil spike + defense names).
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Literal

from pydantic import Field

from prescience.core.cache import TTLCache
from prescience.core.constants import (
    CORRELATION_CACHE_TTL_SECONDS,
    CORRELATION_MARKET_LIMIT,
    CORRELATION_MIN_SHARED_WALLETS,
    CORRELATION_MODERATE_WALLETS,
    CORRELATION_STRONG_WALLETS,
    CORRELATION_TRADE_SAMPLE,
    CORRELATION_WINDOW_HOURS,
    SCAN_CONCURRENCY,
    SECONDS_PER_HOUR,
)
from prescience.core.exceptions import UpstreamUnavailableError
from prescience.core.logging import get_logger
from prescience.markets.models import Market, Trade
from prescience.processing.models import MarketSnapshot, WireModel
from prescience.processing.news import format_volume

if TYPE_CHECKING:
    from prescience.markets.polymarket import PolymarketClient

logger = get_logger(__name__)

SignalStrength = Literal["WEAK", "MODERATE", "STRONG"]
STRENGTH_RANK: dict[str, int] = {"WEAK": 1, "MODERATE": 2, "STRONG": 3}

TOP_SHARED_WALLETS = 5
QUESTION_PREVIEW_CHARS = 60


class ClusterMarket(WireModel):
    question: str
    slug: str | None = None
    exchange: str = "polymarket"
    condition_id: str = Field(alias="conditionId")
    volume_24h: float = Field(default=0.0, alias="volume24hr")
    threat_score: int = 0
    threat_level: str = "normal"


class SharedWallet(WireModel):
    addr: str
    volume_usd: int


class CorrelationCluster(WireModel):
    cluster_id: str
    markets: list[ClusterMarket]
    shared_wallet_count: int
    max_pair_shared_wallets: int
    combined_volume_24h_usd: int
    top_shared_wallets: list[SharedWallet] = Field(default_factory=list)
    narrative: str
    signal_strength: SignalStrength
    detected_at: datetime


class CorrelationMeta(WireModel):
    markets_analyzed: int = 0
    clusters_found: int = 0
    min_shared_wallets_threshold: int
    window_hours: int
    computed_at: datetime


class CorrelationResult(WireModel):
    clusters: list[CorrelationCluster] = Field(default_factory=list)
    meta: CorrelationMeta


@dataclass
class MarketWallets:
    """Wallet activity of one market inside the look-back window."""

    market: Market
    wallets: set[str] = field(default_factory=set)
    volumes: dict[str, float] = field(default_factory=dict)
    trade_count: int = 0
    threat_score: int = 0
    threat_level: str = "normal"


def market_wallets(market: Market, trades: Iterable[Trade], cutoff_ts: float) -> MarketWallets:
    """Collect the wallets (and their USD volume) that traded since ``cutoff_ts``."""
    activity = MarketWallets(market=market)
    for trade in trades:
        if trade.timestamp < cutoff_ts:
            continue
        activity.trade_count += 1
        wallet = trade.wallet.strip().lower()
        if not wallet:
            continue
        activity.wallets.add(wallet)
        activity.volumes[wallet] = activity.volumes.get(wallet, 0.0) + trade.notional
    return activity


def signal_strength(shared_wallets: int) -> SignalStrength:
    if shared_wallets >= CORRELATION_STRONG_WALLETS:
        return "STRONG"
    if shared_wallets >= CORRELATION_MODERATE_WALLETS:
        return "MODERATE"
    return "WEAK"


def _preview(question: str) -> str:
    if len(question) > QUESTION_PREVIEW_CHARS:
        return f'"{question[:QUESTION_PREVIEW_CHARS]}…"'
    return f'"{question}"'


def cluster_narrative(markets: list[Market], shared_count: int, combined_volume: float) -> str:
    if not markets:
        return ""
    volume = format_volume(combined_volume)
    questions = [_preview(m.question) for m in markets]
    if len(markets) == 2:
        return (
            f"{shared_count} wallets active in both {questions[0]} and {questions[1]} "
            f"({volume} combined 24h volume). Coordinated positioning suggests one thesis "
            "expressed across markets."
        )
    return (
        f"{shared_count} wallets active across {len(markets)} correlated markets "
        f"({', '.join(questions[:2])} +{len(markets) - 2} more, {volume} combined 24h volume). "
        "Cross-market positioning pattern detected."
    )


class _UnionFind:
    def __init__(self) -> None:
        self._parent: dict[str, str] = {}
        self._rank: dict[str, int] = {}

    def find(self, x: str) -> str:
        parent = self._parent.setdefault(x, x)
        if parent != x:
            parent = self._parent[x] = self.find(parent)
        return parent

    def union(self, a: str, b: str) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return
        rank_a, rank_b = self._rank.get(ra, 0), self._rank.get(rb, 0)
        if rank_a < rank_b:
            ra, rb = rb, ra
        self._parent[rb] = ra
        if rank_a == rank_b:
            self._rank[ra] = rank_a + 1


@dataclass
class _Edge:
    market_a: str
    market_b: str
    wallets: set[str] = field(default_factory=set)
    wallet_volumes: dict[str, float] = field(default_factory=dict)


def build_clusters(
    activity: list[MarketWallets],
    min_shared_wallets: int = CORRELATION_MIN_SHARED_WALLETS,
    now: datetime | None = None,
) -> list[CorrelationCluster]:
    """Group markets linked by at least ``min_shared_wallets`` common wallets.

    Clusters are ordered by shared wallet count, tightest first.
    """
    now = now or datetime.now(UTC)
    by_id = {a.market.condition_id: a for a in activity}

    wallet_markets: dict[str, set[str]] = defaultdict(set)
    for a in activity:
        for wallet in a.wallets:
            wallet_markets[wallet].add(a.market.condition_id)

    edges: dict[tuple[str, str], _Edge] = {}
    for wallet, market_ids in wallet_markets.items():
        if len(market_ids) < 2:
            continue
        ordered = sorted(market_ids)
        for i, a in enumerate(ordered):
            for b in ordered[i + 1 :]:
                edge = edges.setdefault((a, b), _Edge(market_a=a, market_b=b))
                edge.wallets.add(wallet)
                edge.wallet_volumes[wallet] = (
                    edge.wallet_volumes.get(wallet, 0.0)
                    + by_id[a].volumes.get(wallet, 0.0)
                    + by_id[b].volumes.get(wallet, 0.0)
                )

    significant = [e for e in edges.values() if len(e.wallets) >= min_shared_wallets]
    uf = _UnionFind()
    linked: set[str] = set()
    for edge in significant:
        uf.union(edge.market_a, edge.market_b)
        linked.update((edge.market_a, edge.market_b))

    groups: dict[str, list[MarketWallets]] = defaultdict(list)
    for a in activity:
        if a.market.condition_id in linked:
            groups[uf.find(a.market.condition_id)].append(a)

    clusters: list[CorrelationCluster] = []
    for members in groups.values():
        if len(members) < 2:
            continue
        ids = {m.market.condition_id for m in members}
        cluster_edges = [e for e in significant if e.market_a in ids and e.market_b in ids]

        shared: set[str] = set()
        wallet_volume: dict[str, float] = defaultdict(float)
        for edge in cluster_edges:
            shared.update(edge.wallets)
            for wallet, volume in edge.wallet_volumes.items():
                wallet_volume[wallet] += volume
        top = sorted(wallet_volume.items(), key=lambda kv: kv[1], reverse=True)
        combined = sum(m.market.volume_24h for m in members)
        markets = [m.market for m in members]

        clusters.append(
            CorrelationCluster(
                cluster_id=f"cluster_{len(clusters) + 1}",
                markets=[
                    ClusterMarket(
                        question=m.market.question,
                        slug=m.market.slug,
                        condition_id=m.market.condition_id,
                        volume_24h=m.market.volume_24h,
                        threat_score=m.threat_score,
                        threat_level=m.threat_level,
                    )
                    for m in members
                ],
                shared_wallet_count=len(shared),
                max_pair_shared_wallets=max(len(e.wallets) for e in cluster_edges),
                combined_volume_24h_usd=round(combined),
                top_shared_wallets=[
                    SharedWallet(addr=f"{addr[:8]}…", volume_usd=round(volume))
                    for addr, volume in top[:TOP_SHARED_WALLETS]
                ],
                narrative=cluster_narrative(markets, len(shared), combined),
                signal_strength=signal_strength(len(shared)),
                detected_at=now,
            )
        )

    clusters.sort(key=lambda c: c.shared_wallet_count, reverse=True)
    return clusters


def filter_by_strength(
    clusters: list[CorrelationCluster], min_strength: SignalStrength | None
) -> list[CorrelationCluster]:
    if min_strength is None:
        return clusters
    floor = STRENGTH_RANK[min_strength]
    return [c for c in clusters if STRENGTH_RANK[c.signal_strength] >= floor]


class CorrelationService:
    """Fetches recent trades for the busiest markets and clusters them (cached 15 min)."""

    def __init__(
        self,
        client: PolymarketClient,
        cache: TTLCache[CorrelationResult] | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self._client = client
        self._cache = cache or TTLCache(CORRELATION_CACHE_TTL_SECONDS)
        self._now = now_fn or (lambda: datetime.now(UTC))

    async def analyze(
        self,
        *,
        window_hours: int = CORRELATION_WINDOW_HOURS,
        min_shared_wallets: int = CORRELATION_MIN_SHARED_WALLETS,
        limit: int = CORRELATION_MARKET_LIMIT,
        threat: dict[str, MarketSnapshot] | None = None,
    ) -> CorrelationResult:
        """Run (or serve from cache) the correlation analysis.

        Raises:
            UpstreamUnavailableError: the market listing failed outright
        """
        cache_key = f"{limit}:{window_hours}:{min_shared_wallets}"
        hit = self._cache.get(cache_key)
        if hit is not None:
            return hit.value

        now = self._now()
        markets = await self._client.list_active_markets(limit=limit)
        if not markets and self._client.last_error:
            raise UpstreamUnavailableError(
                f"Failed to fetch markets from Polymarket API: {self._client.last_error}"
            )

        cutoff = now.timestamp() - window_hours * SECONDS_PER_HOUR
        semaphore = asyncio.Semaphore(SCAN_CONCURRENCY)
        threat = threat or {}

        async def collect(market: Market) -> MarketWallets:
            async with semaphore:
                try:
                    trades = await self._client.get_trades(
                        market.condition_id, limit=CORRELATION_TRADE_SAMPLE
                    )
                except Exception as e:
                    logger.debug(
                        "Correlation trade fetch failed",
                        condition_id=market.condition_id,
                        error=str(e),
                    )
                    trades = []
            activity = market_wallets(market, trades, cutoff)
            snapshot = threat.get(market.condition_id)
            if snapshot is not None:
                activity.threat_score = snapshot.threat_score
                activity.threat_level = snapshot.threat_level
            return activity

        activity = list(await asyncio.gather(*(collect(m) for m in markets)))
        clusters = build_clusters(activity, min_shared_wallets, now)
        result = CorrelationResult(
            clusters=clusters,
            meta=CorrelationMeta(
                markets_analyzed=len(activity),
                clusters_found=len(clusters),
                min_shared_wallets_threshold=min_shared_wallets,
                window_hours=window_hours,
                computed_at=now,
            ),
        )
        logger.info(
            "Correlation analysis complete",
            markets=len(activity),
            clusters=len(clusters),
            window_hours=window_hours,
        )
        self._cache.set(cache_key, result)
        return result
