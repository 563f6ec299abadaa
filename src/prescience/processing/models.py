"""Wire models for scanner output and the call-quality gate.

Field names follow the public JSON feeds; upstream-derived fields keep the
venue's camelCase via aliases (``conditionId``, ``volume24hr``...).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

FlowDirectionV2 = Literal["MINORITY_HEAVY", "MAJORITY_ALIGNED", "MIX", "NEUTRAL"]
ThreatLevel = Literal["normal", "medium", "high", "critical"]


class WireModel(BaseModel):
    """Base model serialised with upstream aliases."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ───────────────────────────────────────────────────────────────
# Tier-2
# ───────────────────────────────────────────────────────────────


class AnomalyEntry(WireModel):
    """One market flagged by the Tier-2 broad scan."""

    exchange: str = "polymarket"
    question: str
    condition_id: str = Field(alias="conditionId")
    slug: str | None = None
    anomaly_score: int = Field(ge=0)
    anomaly_flags: list[str] = Field(default_factory=list)
    promote_to_tier1: bool = False

    volume_24h: float = Field(default=0.0, alias="volume24hr")
    volume_total: float = Field(default=0.0, alias="volumeTotal")
    liquidity: float = 0.0
    end_date: str | None = Field(default=None, alias="endDate")
    hours_to_expiry: int | None = None
    current_prices: dict[str, float] = Field(default_factory=dict, alias="currentPrices")

    volume_vs_liquidity_ratio: float = 0.0
    fresh_wallet_count: int | None = None
    fresh_wallet_excess: float | None = None
    max_wallet_dominance: float | None = None
    avg_fresh_wallet_age_days: float | None = None


class Tier2Meta(WireModel):
    markets_processed: int = 0
    anomalies_detected: int = 0
    tier1_promotion_candidates: int = 0
    timestamp: datetime
    engine: str
    next_scan_in_hours: int
    cache_hit: bool = False
    cache_age_minutes: int | None = None


class Tier2Result(WireModel):
    index: list[AnomalyEntry] = Field(default_factory=list)
    meta: Tier2Meta


# ───────────────────────────────────────────────────────────────
# Tier-1
# ───────────────────────────────────────────────────────────────


class FlowAnalysis(WireModel):
    """Two-sided flow relative to the majority/minority outcome."""

    flow_direction_v2: FlowDirectionV2 = "NEUTRAL"
    minority_side_flow_usd: float = 0.0
    majority_side_flow_usd: float = 0.0
    minority_outcome: str | None = None
    majority_outcome: str | None = None
    flow_dominance: float = 0.0


class VeteranFlow(WireModel):
    veteran_wallets: int = 0
    veteran_minority_flow_usd: float = 0.0
    veteran_majority_flow_usd: float = 0.0
    veteran_minority_flow_score: int = 0
    veteran_note: str | None = None


class VelocityResult(WireModel):
    velocity_score: int = 0
    recent_trades: int = 0
    previous_trades: int = 0
    trade_rate_ratio: float | None = None
    flow_shift: str | None = None
    flow_shift_points: int = 0
    is_accelerating: bool = False


class DampeningResult(WireModel):
    is_dampened: bool = False
    factor: float = 0.0
    reason: str | None = None


class ThreatComponent(WireModel):
    """One weighted contribution to the threat score."""

    name: str
    intensity: float = Field(ge=0.0, le=1.0)
    weight: int
    points: float


class MarketSnapshot(WireModel):
    """Tier-1 output for one market."""

    exchange: str = "polymarket"
    question: str
    condition_id: str = Field(alias="conditionId")
    slug: str | None = None
    scan_depth: Literal["deep", "lightweight"] = "deep"

    outcomes: list[str] = Field(default_factory=list)
    current_prices: dict[str, float] = Field(default_factory=dict, alias="currentPrices")
    yes_price: float | None = None
    volume_24h: float = Field(default=0.0, alias="volume24hr")
    volume_total: float = Field(default=0.0, alias="volumeTotal")
    liquidity: float = 0.0
    end_date: str | None = Field(default=None, alias="endDate")
    hours_to_expiry: int | None = None
    volume_vs_liquidity: float = 0.0

    total_wallets: int = 0
    total_trades: int = 0
    total_volume_usd: float = 0.0
    sample_capped: bool = False
    fresh_wallets: int = 0
    fresh_wallet_ratio: float = 0.0
    fresh_wallet_excess: float = 0.0
    max_wallet_dominance: float = 0.0
    large_positions: int = 0
    large_position_ratio: float = 0.0
    flow_direction: Literal["BUY", "SELL", "NEUTRAL"] = "NEUTRAL"
    flow_imbalance: float = 0.0

    flow_direction_v2: FlowDirectionV2 = "NEUTRAL"
    minority_side_flow_usd: float = 0.0
    majority_side_flow_usd: float = 0.0
    minority_outcome: str | None = None
    majority_outcome: str | None = None

    veteran_minority_flow_score: int = 0
    veteran_note: str | None = None
    velocity: VelocityResult = Field(default_factory=VelocityResult)

    is_dampened: bool = False
    dampening_factor: float = 0.0
    dampening_reason: str | None = None

    threat_score: int = Field(default=0, ge=0, le=100)
    threat_level: ThreatLevel = "normal"
    threat_components: list[ThreatComponent] = Field(default_factory=list)
    call_side: str | None = None

    @property
    def key(self) -> str:
        return self.slug or self.condition_id


class ScanMeta(WireModel):
    engine: str
    timestamp: datetime
    markets_scanned: int = 0
    deep_scanned: int = 0
    failed_markets: int = 0
    dampened_markets: int = 0
    cache_hit: bool = False
    cache_age_minutes: int | None = None


class ScanResult(WireModel):
    scan: list[MarketSnapshot] = Field(default_factory=list)
    meta: ScanMeta


# ───────────────────────────────────────────────────────────────
# Call-quality gate
# ───────────────────────────────────────────────────────────────


class CallScore(WireModel):
    score: int = Field(ge=0, le=12)
    reasons: list[str] = Field(default_factory=list)
    days_to_resolution: int = Field(alias="daysToResolution")
    on_signals: list[str] = Field(default_factory=list)
    is_sport: bool = False


class ScoredSnapshot(WireModel):
    """A Tier-1 snapshot paired with its call-quality verdict."""

    snapshot: MarketSnapshot
    quality: CallScore
