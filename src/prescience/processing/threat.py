"""Threat score: a bounded [0, 100] composite of Tier-1 features.

Each component maps a feature to an intensity in [0, 1] and contributes
``intensity * weight`` points. Weights are ordered so that, at equal
intensity, fresh-wallet surge > whale concentration > volume spike >
extreme pricing > expiry rush. Dampening scales the total afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass

from prescience.core.constants import (
    EXPIRY_RUSH_HOURS,
    EXPIRY_RUSH_MIN_VOLUME,
    EXTREME_PRICE_HIGH,
    EXTREME_PRICE_LOW,
    EXTREME_PRICE_MIN_VOLUME,
    FRESH_EXCESS_SATURATION,
    LARGE_POSITION_RATIO_SATURATION,
    THREAT_LEVEL_CRITICAL,
    THREAT_LEVEL_HIGH,
    THREAT_LEVEL_MEDIUM,
    THREAT_WEIGHT_EXPIRY_RUSH,
    THREAT_WEIGHT_EXTREME_PRICE,
    THREAT_WEIGHT_FRESH_SURGE,
    THREAT_WEIGHT_LARGE_POSITIONS,
    THREAT_WEIGHT_MINORITY_FLOW,
    THREAT_WEIGHT_MIXED_FLOW,
    THREAT_WEIGHT_VETERAN,
    THREAT_WEIGHT_VOLUME_SPIKE,
    THREAT_WEIGHT_WHALE,
    VOLUME_RATIO_SATURATION,
    VOLUME_SPIKE_RATIO,
    WHALE_DOMINANCE,
    WHALE_DOMINANCE_SATURATION,
)
from prescience.processing.dampening import apply_dampening
from prescience.processing.models import ThreatComponent, ThreatLevel

THREAT_WEIGHTS: dict[str, int] = {
    "fresh_wallet_surge": THREAT_WEIGHT_FRESH_SURGE,
    "whale_concentration": THREAT_WEIGHT_WHALE,
    "volume_spike": THREAT_WEIGHT_VOLUME_SPIKE,
    "minority_flow": THREAT_WEIGHT_MINORITY_FLOW,
    "mixed_flow": THREAT_WEIGHT_MIXED_FLOW,
    "extreme_pricing": THREAT_WEIGHT_EXTREME_PRICE,
    "large_positions": THREAT_WEIGHT_LARGE_POSITIONS,
    "expiry_rush": THREAT_WEIGHT_EXPIRY_RUSH,
    "veteran_minority_flow": THREAT_WEIGHT_VETERAN,
}


@dataclass
class ThreatInputs:
    """Feature values the threat score is built from."""

    fresh_wallet_excess: float = 0.0
    max_wallet_dominance: float = 0.0
    volume_vs_liquidity: float = 0.0
    volume_24h: float = 0.0
    max_price: float | None = None
    min_price: float | None = None
    hours_to_expiry: float | None = None
    flow_direction_v2: str = "NEUTRAL"
    flow_dominance: float = 0.0
    large_position_ratio: float = 0.0
    veteran_minority_flow_score: int = 0


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _ramp(value: float, start: float, full: float) -> float:
    """0 at or below ``start``, 1 at ``full``, linear in between."""
    if value <= start:
        return 0.0
    return _clamp((value - start) / (full - start))


def component_intensities(inputs: ThreatInputs) -> dict[str, float]:
    extreme = (
        inputs.max_price is not None
        and inputs.min_price is not None
        and (inputs.max_price > EXTREME_PRICE_HIGH or inputs.min_price < EXTREME_PRICE_LOW)
        and inputs.volume_24h > EXTREME_PRICE_MIN_VOLUME
    )
    expiry_rush = (
        inputs.hours_to_expiry is not None
        and 0 < inputs.hours_to_expiry < EXPIRY_RUSH_HOURS
        and inputs.volume_24h > EXPIRY_RUSH_MIN_VOLUME
    )
    return {
        "fresh_wallet_surge": _clamp(inputs.fresh_wallet_excess / FRESH_EXCESS_SATURATION),
        "whale_concentration": _ramp(
            inputs.max_wallet_dominance, WHALE_DOMINANCE, WHALE_DOMINANCE_SATURATION
        ),
        "volume_spike": _ramp(
            inputs.volume_vs_liquidity, VOLUME_SPIKE_RATIO, VOLUME_RATIO_SATURATION
        ),
        "minority_flow": (
            _clamp(abs(inputs.flow_dominance))
            if inputs.flow_direction_v2 == "MINORITY_HEAVY"
            else 0.0
        ),
        "mixed_flow": 1.0 if inputs.flow_direction_v2 == "MIX" else 0.0,
        "extreme_pricing": 1.0 if extreme else 0.0,
        "large_positions": _clamp(inputs.large_position_ratio / LARGE_POSITION_RATIO_SATURATION),
        "expiry_rush": 1.0 if expiry_rush else 0.0,
        "veteran_minority_flow": _clamp(inputs.veteran_minority_flow_score / 100),
    }


def compute_threat_score(
    inputs: ThreatInputs, dampening_factor: float = 0.0
) -> tuple[int, list[ThreatComponent]]:
    """Return the dampened, clamped threat score and its non-zero components."""
    components: list[ThreatComponent] = []
    raw = 0.0
    for name, intensity in component_intensities(inputs).items():
        if intensity <= 0:
            continue
        weight = THREAT_WEIGHTS[name]
        points = intensity * weight
        raw += points
        components.append(
            ThreatComponent(
                name=name, intensity=round(intensity, 3), weight=weight, points=round(points, 2)
            )
        )
    score = apply_dampening(raw, dampening_factor) if dampening_factor > 0 else int(raw + 0.5)
    return max(0, min(100, score)), components


def threat_level(score: int) -> ThreatLevel:
    if score >= THREAT_LEVEL_CRITICAL:
        return "critical"
    if score >= THREAT_LEVEL_HIGH:
        return "high"
    if score >= THREAT_LEVEL_MEDIUM:
        return "medium"
    return "normal"
