"""Velocity: is trading in a market accelerating?

Two components, capped at 100 together:

- trade-rate acceleration: trades in the most recent window vs the one
  before it, anchored at scan time
- flow shift: the market's ``flow_direction_v2`` changed since an earlier
  snapshot held in process memory (e.g. MAJORITY_ALIGNED -> MINORITY_HEAVY)

Snapshots are per-process and best effort; a cold process simply scores the
flow-shift component as zero.
"""

from __future__ import annotations

from dataclasses import dataclass

from prescience.core.constants import (
    SECONDS_PER_DAY,
    SECONDS_PER_HOUR,
    VELOCITY_ACCELERATION_SCORE,
    VELOCITY_MAX_SNAPSHOTS,
    VELOCITY_WINDOW_HOURS,
)
from prescience.markets.models import Trade
from prescience.processing.models import VelocityResult

FLOW_SHIFT_POINTS: dict[tuple[str, str], int] = {
    ("MAJORITY_ALIGNED", "MINORITY_HEAVY"): 30,
    ("NEUTRAL", "MINORITY_HEAVY"): 25,
    ("MAJORITY_ALIGNED", "MIX"): 15,
    ("MIX", "MINORITY_HEAVY"): 15,
    ("MINORITY_HEAVY", "MAJORITY_ALIGNED"): 10,
}

RATE_POINTS_PER_UNIT = 20  # points per 1x of acceleration above the previous window
NEW_ACTIVITY_MIN_TRADES = 10
NEW_ACTIVITY_POINTS = 40


@dataclass
class _Snapshot:
    ts: float
    flow_direction_v2: str


def trade_rate_points(
    trades: list[Trade],
    now_ts: float,
    *,
    window_hours: float = VELOCITY_WINDOW_HOURS,
    sample_capped: bool = False,
) -> tuple[int, int, int, float | None]:
    """Return ``(points, recent_count, previous_count, ratio)``."""
    window = window_hours * SECONDS_PER_HOUR
    recent = sum(1 for t in trades if now_ts - window < t.timestamp <= now_ts)
    previous = sum(1 for t in trades if now_ts - 2 * window < t.timestamp <= now_ts - window)

    # A capped sample that does not reach back to the previous window undercounts it
    if sample_capped and trades and min(t.timestamp for t in trades) > now_ts - 2 * window:
        return 0, recent, previous, None

    if previous == 0:
        points = NEW_ACTIVITY_POINTS if recent >= NEW_ACTIVITY_MIN_TRADES else 0
        return points, recent, previous, None

    ratio = recent / previous
    points = min(100, round((ratio - 1) * RATE_POINTS_PER_UNIT)) if ratio > 1 else 0
    return points, recent, previous, ratio


class VelocityTracker:
    """In-memory flow snapshots per market (at most one per hour, 7 days deep)."""

    def __init__(
        self,
        max_snapshots: int = VELOCITY_MAX_SNAPSHOTS,
        min_interval_seconds: float = SECONDS_PER_HOUR,
        retention_seconds: float = VELOCITY_MAX_SNAPSHOTS * SECONDS_PER_HOUR,
    ) -> None:
        self._max_snapshots = max_snapshots
        self._min_interval = min_interval_seconds
        self._retention = retention_seconds
        self._store: dict[str, list[_Snapshot]] = {}
        self._last_prune: float | None = None

    def __len__(self) -> int:
        return len(self._store)

    def prune(self, now_ts: float) -> int:
        """Drop markets whose snapshots are all older than the retention window."""
        cutoff = now_ts - self._retention
        stale = [key for key, snaps in self._store.items() if not snaps or snaps[-1].ts <= cutoff]
        for key in stale:
            del self._store[key]
        self._last_prune = now_ts
        return len(stale)

    def record(self, market_id: str, flow_direction_v2: str, now_ts: float) -> None:
        if self._last_prune is None or now_ts - self._last_prune >= self._min_interval:
            self.prune(now_ts)
        snapshots = self._store.setdefault(market_id, [])
        if snapshots and now_ts - snapshots[-1].ts < self._min_interval:
            return
        snapshots.append(_Snapshot(ts=now_ts, flow_direction_v2=flow_direction_v2))
        if len(snapshots) > self._max_snapshots:
            del snapshots[: len(snapshots) - self._max_snapshots]

    def previous_flow(self, market_id: str, now_ts: float) -> str | None:
        """Oldest flow tag seen in the last 24 hours."""
        for snap in self._store.get(market_id, []):
            if now_ts - snap.ts < SECONDS_PER_DAY:
                return snap.flow_direction_v2
        return None

    def compute(
        self,
        market_id: str,
        trades: list[Trade],
        flow_direction_v2: str,
        now_ts: float,
        *,
        sample_capped: bool = False,
    ) -> VelocityResult:
        rate_points, recent, previous, ratio = trade_rate_points(
            trades, now_ts, sample_capped=sample_capped
        )

        shift_points = 0
        shift: str | None = None
        prior = self.previous_flow(market_id, now_ts)
        if prior is not None:
            shift_points = FLOW_SHIFT_POINTS.get((prior, flow_direction_v2), 0)
            if shift_points:
                shift = f"{prior}→{flow_direction_v2}"
        self.record(market_id, flow_direction_v2, now_ts)

        score = min(100, rate_points + shift_points)
        return VelocityResult(
            velocity_score=score,
            recent_trades=recent,
            previous_trades=previous,
            trade_rate_ratio=round(ratio, 2) if ratio is not None else None,
            flow_shift=shift,
            flow_shift_points=shift_points,
            is_accelerating=score > VELOCITY_ACCELERATION_SCORE,
        )
