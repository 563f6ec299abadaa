"""Call-quality gate: is a Tier-1 snapshot worth a public signal?

Four axes of up to 3 points each (consensus divergence, data edge, time
sensitivity, narrative value) give a 0-12 score. Dampened markets lose 2
points and markets with fewer than two data-edge signals are capped at 5,
so a signal at the default threshold of 6 always has real data behind it.
Sports markets are never called.
"""

from __future__ import annotations

import math
import re
from datetime import datetime

from prescience.config import Settings, get_settings
from prescience.core.constants import (
    CALL_QUALITY_MAX,
    DEFAULT_DAYS_TO_RESOLUTION,
    FRESH_EXCESS_SIGNAL,
    LARGE_POSITION_RATIO_SIGNAL,
    NARRATIVE_MAJOR_VOLUME,
    NARRATIVE_NOTABLE_VOLUME,
    SECONDS_PER_DAY,
    VELOCITY_ACCELERATION_SCORE,
)
from prescience.markets.models import parse_timestamp
from prescience.processing.models import CallScore, MarketSnapshot

SPORT_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bvs\.?(?!\w)",
        r"\bnba\b",
        r"\bnfl\b",
        r"\bnhl\b",
        r"\bmlb\b",
        r"\bufc\b",
        r"\bcbb\b",
        r"\bcfb\b",
        r"\bpremier league\b",
        r"\bpga\b",
        r"\btennis\b",
        r"\bf1\b",
        r"\bboxing\b",
        r"\bmma\b",
        r"\b(?:blue devils|wolverines|wildcats|bulldogs|celtics|lakers|warriors|suns|magic"
        r"|76ers|pelicans|cavaliers|nuggets|bucks|knicks|nets|heat|mavericks|thunder"
        r"|rockets)\b",
    )
]

NARRATIVE_RE = re.compile(
    r"\b(president|election|trump|biden|fed|interest rate|war|ceasefire|iran|china|russia"
    r"|ukraine|tariff|gdp|recession|ipo|crypto|bitcoin|ethereum|ai|openai|google|apple"
    r"|tesla|congress|supreme court|nato|opec)\b",
    re.IGNORECASE,
)


def is_sports_market(question: str) -> bool:
    return any(p.search(question or "") for p in SPORT_PATTERNS)


def data_edge_signals(snapshot: MarketSnapshot) -> list[str]:
    """Names of the on-signals that fired for the data-edge axis."""
    signals = []
    if snapshot.flow_direction_v2 == "MINORITY_HEAVY":
        signals.append("minority_heavy_flow")
    if snapshot.fresh_wallet_excess > FRESH_EXCESS_SIGNAL:
        signals.append("fresh_wallet_excess")
    if snapshot.large_position_ratio > LARGE_POSITION_RATIO_SIGNAL:
        signals.append("large_positions")
    if snapshot.veteran_minority_flow_score > 0:
        signals.append("veteran_minority_flow")
    if snapshot.velocity.velocity_score > VELOCITY_ACCELERATION_SCORE:
        signals.append("velocity")
    return signals


def days_to_resolution(snapshot: MarketSnapshot, now: datetime) -> float:
    end = parse_timestamp(snapshot.end_date)
    if end is None:
        return float(DEFAULT_DAYS_TO_RESOLUTION)
    return max(0.0, (end - now).total_seconds() / SECONDS_PER_DAY)


def _divergence(yes_price: float | None) -> tuple[int, str | None]:
    if yes_price is None:
        return 0, None
    if 0.35 <= yes_price <= 0.65:
        return 3, "Near 50/50 — max edge"
    if 0.15 <= yes_price < 0.35 or 0.65 < yes_price <= 0.85:
        return 2, "Meaningful divergence"
    if 0.05 <= yes_price < 0.15 or 0.85 < yes_price <= 0.95:
        return 1, "Mild lean"
    return 0, None


def _data_edge(count: int) -> tuple[int, str | None]:
    if count >= 3:
        return 3, "Multiple converging signals"
    if count == 2:
        return 2, "Clear flow signal"
    if count == 1:
        return 1, "Mild signal"
    return 0, None


def _time_sensitivity(days: float) -> tuple[int, str | None]:
    if days <= 3:
        return 3, "Resolves in <3 days"
    if days <= 14:
        return 2, "Resolves in <2 weeks"
    if days <= 60:
        return 1, "Resolves in <2 months"
    return 0, None


def _narrative(question: str, total_volume: float) -> tuple[int, str | None]:
    if NARRATIVE_RE.search(question):
        return 3, "Major event"
    if total_volume > NARRATIVE_MAJOR_VOLUME:
        return 2, "High-volume market"
    if total_volume > NARRATIVE_NOTABLE_VOLUME:
        return 1, "Notable market"
    return 0, None


def score_call(
    snapshot: MarketSnapshot,
    now: datetime,
    settings: Settings | None = None,
) -> CallScore:
    """Score a snapshot on the 0-12 call-quality scale."""
    settings = settings or get_settings()
    days = days_to_resolution(snapshot, now)
    rounded_days = int(math.floor(days + 0.5))

    if is_sports_market(snapshot.question):
        return CallScore(
            score=0, reasons=["Sports — skip"], days_to_resolution=0, is_sport=True
        )

    signals = data_edge_signals(snapshot)
    total_volume = snapshot.volume_total or snapshot.total_volume_usd
    score = 0
    reasons: list[str] = []
    for points, reason in (
        _divergence(snapshot.yes_price),
        _data_edge(len(signals)),
        _time_sensitivity(days),
        _narrative(snapshot.question, total_volume),
    ):
        score += points
        if reason:
            reasons.append(reason)

    if snapshot.is_dampened:
        score -= settings.dampened_penalty
        reasons.append("Dampened")
    if len(signals) < 2:
        score = min(score, settings.weak_edge_cap)

    return CallScore(
        score=max(0, min(CALL_QUALITY_MAX, score)),
        reasons=reasons,
        days_to_resolution=rounded_days,
        on_signals=signals,
    )


def passes_gate(call: CallScore, settings: Settings | None = None) -> bool:
    settings = settings or get_settings()
    return not call.is_sport and call.score >= settings.call_quality_threshold
