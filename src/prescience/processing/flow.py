"""Directional flow analysis relative to the majority/minority outcome.

Trades are mapped onto outcomes by index (name first, ``outcomeIndex``
fallback), so renaming outcomes without changing prices or volumes never
changes the classification.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Literal

from prescience.core.constants import SECONDS_PER_DAY
from prescience.markets.models import Market, Trade
from prescience.processing.models import FlowAnalysis, FlowDirectionV2, VeteranFlow
from prescience.processing.wallets import WalletProfile

LEGACY_FLOW_THRESHOLD = 0.1


def net_flow_by_outcome(trades: Iterable[Trade], market: Market) -> dict[int, float]:
    """Buy notional minus sell notional per outcome index."""
    net: dict[int, float] = {}
    for trade in trades:
        index = trade.resolve_outcome_index(market)
        if index is None:
            continue
        signed = trade.notional if trade.side == "BUY" else -trade.notional
        net[index] = net.get(index, 0.0) + signed
    return net


def classify_flow(
    minority_net: float,
    majority_net: float,
    *,
    dominance_margin: float,
    mix_margin: float,
    min_notional: float,
) -> tuple[FlowDirectionV2, float]:
    """Classify two-sided net flow into exactly one direction tag.

    Only net *inflow* counts: each side contributes ``max(net, 0)``. With
    ``d = (minority - majority) / total``:

    - ``total < min_notional`` -> NEUTRAL
    - ``d > dominance_margin`` -> MINORITY_HEAVY
    - ``d < -dominance_margin`` -> MAJORITY_ALIGNED
    - ``|d| > mix_margin`` -> MIX
    - otherwise NEUTRAL
    """
    minority = max(0.0, minority_net)
    majority = max(0.0, majority_net)
    total = minority + majority
    if total <= 0 or total < min_notional:
        return "NEUTRAL", 0.0

    dominance = (minority - majority) / total
    if dominance > dominance_margin:
        return "MINORITY_HEAVY", dominance
    if dominance < -dominance_margin:
        return "MAJORITY_ALIGNED", dominance
    if abs(dominance) > mix_margin:
        return "MIX", dominance
    return "NEUTRAL", dominance


def analyze_flow(
    market: Market,
    trades: list[Trade],
    now_ts: float,
    *,
    dominance_margin: float = 0.40,
    mix_margin: float = 0.20,
    min_notional: float = 100.0,
    window_seconds: int = SECONDS_PER_DAY,
) -> FlowAnalysis:
    """Flow direction v2 over the trailing ``window_seconds`` of the sample."""
    majority_index = market.majority_index
    if not market.is_binary or majority_index is None:
        return FlowAnalysis()

    minority_index = 1 - majority_index
    recent = [t for t in trades if now_ts - t.timestamp <= window_seconds]
    net = net_flow_by_outcome(recent, market)
    minority_net = net.get(minority_index, 0.0)
    majority_net = net.get(majority_index, 0.0)

    direction, dominance = classify_flow(
        minority_net,
        majority_net,
        dominance_margin=dominance_margin,
        mix_margin=mix_margin,
        min_notional=min_notional,
    )
    return FlowAnalysis(
        flow_direction_v2=direction,
        minority_side_flow_usd=round(minority_net, 2),
        majority_side_flow_usd=round(majority_net, 2),
        minority_outcome=market.outcomes[minority_index],
        majority_outcome=market.outcomes[majority_index],
        flow_dominance=round(dominance, 3),
    )


def buy_sell_imbalance(trades: Iterable[Trade]) -> tuple[Literal["BUY", "SELL", "NEUTRAL"], float]:
    """Side-only imbalance ``(buy - sell) / (buy + sell)`` over the whole sample."""
    buy = sell = 0.0
    for trade in trades:
        if trade.side == "BUY":
            buy += trade.notional
        else:
            sell += trade.notional
    total = buy + sell
    imbalance = (buy - sell) / total if total > 0 else 0.0
    if imbalance > LEGACY_FLOW_THRESHOLD:
        return "BUY", imbalance
    if imbalance < -LEGACY_FLOW_THRESHOLD:
        return "SELL", imbalance
    return "NEUTRAL", imbalance


def analyze_veteran_flow(
    market: Market,
    profiles: dict[str, WalletProfile],
    now_ts: float,
    *,
    veteran_age_days: float = 60.0,
) -> VeteranFlow:
    """Where do long-standing wallets put their money?

    Veterans are wallets whose first trade in this market's sample is older
    than ``veteran_age_days``. When more than half of their net inflow goes to
    the minority outcome the score is ``round((share - 0.5) * 200)``.
    """
    majority_index = market.majority_index
    if not market.is_binary or majority_index is None:
        return VeteranFlow()
    minority_index = 1 - majority_index

    veterans = [p for p in profiles.values() if p.age_days(now_ts) > veteran_age_days]
    minority = sum(max(0.0, p.net_by_outcome.get(minority_index, 0.0)) for p in veterans)
    majority = sum(max(0.0, p.net_by_outcome.get(majority_index, 0.0)) for p in veterans)
    total = minority + majority

    result = VeteranFlow(
        veteran_wallets=len(veterans),
        veteran_minority_flow_usd=round(minority, 2),
        veteran_majority_flow_usd=round(majority, 2),
    )
    if total <= 0:
        return result

    share = minority / total
    if share > 0.5:
        result.veteran_minority_flow_score = max(1, round((share - 0.5) * 200))
        result.veteran_note = (
            f"{len(veterans)} veteran wallet{'s' if len(veterans) != 1 else ''} "
            f"put {share:.0%} of their flow on {market.outcomes[minority_index]}"
        )
    return result
