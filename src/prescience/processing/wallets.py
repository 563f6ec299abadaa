"""Per-market wallet profiling from a trade sample.

Profiles are rebuilt on every scan and never persisted. Ages are measured
from the first trade seen *in this market's sample*, so a wallet that has
been trading elsewhere for years still counts as fresh here.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from prescience.core.constants import (
    COORDINATED_FRESH_AGE_DAYS,
    FRESH_WALLET_AGE_DAYS,
    SECONDS_PER_DAY,
)
from prescience.markets.models import Market, Trade


@dataclass
class WalletProfile:
    """Activity of one wallet in one market."""

    address: str
    first_seen: int
    last_seen: int
    total_notional: float = 0.0
    trade_count: int = 0
    # outcome index -> net notional (buys positive, sells negative)
    net_by_outcome: dict[int, float] = field(default_factory=dict)

    def age_days(self, now_ts: float) -> float:
        return (now_ts - self.first_seen) / SECONDS_PER_DAY


@dataclass
class WalletSummary:
    """Aggregate fresh-wallet and concentration metrics over one sample."""

    total_wallets: int = 0
    total_trades: int = 0
    total_volume: float = 0.0
    fresh_wallet_count: int = 0
    fresh_wallet_ratio: float = 0.0
    fresh_wallet_excess: float = 0.0
    max_wallet_volume: float = 0.0
    max_wallet_dominance: float = 0.0
    avg_fresh_wallet_age_days: float | None = None
    large_positions: int = 0
    large_position_ratio: float = 0.0

    @property
    def coordinated_fresh(self) -> bool:
        return (
            self.fresh_wallet_count > 0
            and self.avg_fresh_wallet_age_days is not None
            and self.avg_fresh_wallet_age_days < COORDINATED_FRESH_AGE_DAYS
        )


def build_wallet_profiles(
    trades: Iterable[Trade], market: Market | None = None
) -> dict[str, WalletProfile]:
    """Group trades by lowercased proxy wallet."""
    profiles: dict[str, WalletProfile] = {}
    for trade in trades:
        address = trade.wallet.lower()
        profile = profiles.get(address)
        if profile is None:
            profile = WalletProfile(
                address=address, first_seen=trade.timestamp, last_seen=trade.timestamp
            )
            profiles[address] = profile
        profile.first_seen = min(profile.first_seen, trade.timestamp)
        profile.last_seen = max(profile.last_seen, trade.timestamp)
        profile.total_notional += trade.notional
        profile.trade_count += 1

        if market is not None:
            index = trade.resolve_outcome_index(market)
            if index is not None:
                signed = trade.notional if trade.side == "BUY" else -trade.notional
                profile.net_by_outcome[index] = profile.net_by_outcome.get(index, 0.0) + signed
    return profiles


def summarize_wallets(
    profiles: dict[str, WalletProfile],
    now_ts: float,
    *,
    baseline: float,
    fresh_min_notional: float,
    large_position_notional: float = float("inf"),
    fresh_age_days: float = FRESH_WALLET_AGE_DAYS,
) -> WalletSummary:
    """Fresh-wallet excess, whale dominance and large-position counts.

    A wallet is fresh when its first trade in the sample is younger than
    ``fresh_age_days`` and its cumulative notional exceeds ``fresh_min_notional``.
    ``fresh_wallet_excess`` is the fresh ratio above ``baseline``, floored at 0.
    """
    if not profiles:
        return WalletSummary()

    total_volume = sum(p.total_notional for p in profiles.values())
    total_trades = sum(p.trade_count for p in profiles.values())
    fresh = [
        p
        for p in profiles.values()
        if p.age_days(now_ts) < fresh_age_days and p.total_notional > fresh_min_notional
    ]
    large = [p for p in profiles.values() if p.total_notional > large_position_notional]
    max_volume = max(p.total_notional for p in profiles.values())

    total_wallets = len(profiles)
    fresh_ratio = len(fresh) / total_wallets
    avg_age = sum(p.age_days(now_ts) for p in fresh) / len(fresh) if fresh else None

    return WalletSummary(
        total_wallets=total_wallets,
        total_trades=total_trades,
        total_volume=total_volume,
        fresh_wallet_count=len(fresh),
        fresh_wallet_ratio=fresh_ratio,
        fresh_wallet_excess=max(0.0, fresh_ratio - baseline),
        max_wallet_volume=max_volume,
        max_wallet_dominance=max_volume / total_volume if total_volume > 0 else 0.0,
        avg_fresh_wallet_age_days=avg_age,
        large_positions=len(large),
        large_position_ratio=len(large) / total_wallets,
    )
