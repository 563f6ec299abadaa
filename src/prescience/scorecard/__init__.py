"""Public track record: scorecard snapshot built from signals and receipts."""

from prescience.scorecard.aggregator import build_scorecard, run_scorecard

__all__ = ["build_scorecard", "run_scorecard"]
