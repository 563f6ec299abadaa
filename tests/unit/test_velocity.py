"""Tests for trade-rate acceleration and flow-shift velocity."""

from __future__ import annotations

from factories import NOW_TS, make_trade
from prescience.markets.models import Trade
from prescience.processing.velocity import VelocityTracker, trade_rate_points

HOUR = 3600


def _trades_at(hours_ago: float, count: int) -> list[Trade]:
    return [make_trade(f"0x{hours_ago}-{i}", age_days=hours_ago / 24) for i in range(count)]


class TestTradeRatePoints:
    def test_acceleration(self) -> None:
        trades = _trades_at(1, 12) + _trades_at(8, 3)

        points, recent, previous, ratio = trade_rate_points(trades, NOW_TS)

        assert (recent, previous) == (12, 3)
        assert ratio == 4.0
        assert points == 60

    def test_slowdown_scores_zero(self) -> None:
        trades = _trades_at(1, 2) + _trades_at(8, 6)

        points, _, _, ratio = trade_rate_points(trades, NOW_TS)

        assert points == 0
        assert ratio is not None and ratio < 1

    def test_new_activity(self) -> None:
        points, recent, previous, ratio = trade_rate_points(_trades_at(1, 10), NOW_TS)

        assert (recent, previous) == (10, 0)
        assert ratio is None
        assert points == 40

    def test_little_new_activity(self) -> None:
        points, _, _, _ = trade_rate_points(_trades_at(1, 5), NOW_TS)

        assert points == 0

    def test_capped_sample_that_misses_previous_window(self) -> None:
        trades = _trades_at(1, 12) + _trades_at(8, 3)

        points, _, _, ratio = trade_rate_points(trades, NOW_TS, sample_capped=True)

        assert points == 0
        assert ratio is None

    def test_capped_sample_reaching_back_still_scores(self) -> None:
        trades = _trades_at(1, 12) + _trades_at(8, 3) + _trades_at(20, 1)

        points, _, _, _ = trade_rate_points(trades, NOW_TS, sample_capped=True)

        assert points == 60


class TestVelocityTracker:
    def test_cold_tracker_has_no_flow_shift(self) -> None:
        tracker = VelocityTracker()

        result = tracker.compute("m1", [], "MINORITY_HEAVY", NOW_TS)

        assert result.flow_shift is None
        assert result.flow_shift_points == 0
        assert result.velocity_score == 0
        assert not result.is_accelerating

    def test_flow_shift_to_minority_heavy(self) -> None:
        tracker = VelocityTracker()
        tracker.record("m1", "MAJORITY_ALIGNED", NOW_TS - 2 * HOUR)

        result = tracker.compute("m1", [], "MINORITY_HEAVY", NOW_TS)

        assert result.flow_shift == "MAJORITY_ALIGNED→MINORITY_HEAVY"
        assert result.flow_shift_points == 30
        assert result.velocity_score == 30
        assert result.is_accelerating

    def test_score_is_capped(self) -> None:
        tracker = VelocityTracker()
        tracker.record("m1", "MAJORITY_ALIGNED", NOW_TS - 2 * HOUR)
        trades = _trades_at(1, 40) + _trades_at(8, 4)

        result = tracker.compute("m1", trades, "MINORITY_HEAVY", NOW_TS)

        assert result.velocity_score == 100

    def test_record_is_rate_limited(self) -> None:
        tracker = VelocityTracker()
        tracker.record("m1", "NEUTRAL", NOW_TS - 30 * 60)
        tracker.record("m1", "MIX", NOW_TS - 10 * 60)

        assert tracker.previous_flow("m1", NOW_TS) == "NEUTRAL"

    def test_snapshots_are_bounded(self) -> None:
        tracker = VelocityTracker(max_snapshots=2, min_interval_seconds=0)
        tracker.record("m1", "NEUTRAL", NOW_TS - 3 * HOUR)
        tracker.record("m1", "MIX", NOW_TS - 2 * HOUR)
        tracker.record("m1", "MINORITY_HEAVY", NOW_TS - HOUR)

        assert tracker.previous_flow("m1", NOW_TS) == "MIX"

    def test_snapshots_older_than_a_day_are_ignored(self) -> None:
        tracker = VelocityTracker()
        tracker.record("m1", "MAJORITY_ALIGNED", NOW_TS - 25 * HOUR)

        assert tracker.previous_flow("m1", NOW_TS) is None

    def test_stale_markets_are_evicted(self) -> None:
        tracker = VelocityTracker()
        tracker.record("old", "MIX", NOW_TS - 8 * 24 * HOUR)
        tracker.record("recent", "MIX", NOW_TS - 2 * HOUR)

        tracker.record("new", "NEUTRAL", NOW_TS)

        assert len(tracker) == 2
        assert tracker.previous_flow("old", NOW_TS) is None
        assert tracker.previous_flow("recent", NOW_TS) == "MIX"

    def test_prune_keeps_markets_inside_retention(self) -> None:
        tracker = VelocityTracker(retention_seconds=6 * HOUR)
        tracker.record("a", "MIX", NOW_TS - 7 * HOUR)
        tracker.record("b", "MIX", NOW_TS - 5 * HOUR)

        assert tracker.prune(NOW_TS) == 1
        assert len(tracker) == 1
