"""Signal pipeline: scans, call-quality gate and cross-market correlation."""

from prescience.processing.correlation import CorrelationService, build_clusters
from prescience.processing.models import (
    AnomalyEntry,
    CallScore,
    MarketSnapshot,
    ScanResult,
    Tier2Result,
)
from prescience.processing.quality import score_call
from prescience.processing.tier1 import Tier1Scanner, analyze_market
from prescience.processing.tier2 import Tier2Scanner, score_tier2_market

__all__ = [
    "AnomalyEntry",
    "CallScore",
    "CorrelationService",
    "MarketSnapshot",
    "ScanResult",
    "Tier1Scanner",
    "Tier2Result",
    "Tier2Scanner",
    "analyze_market",
    "build_clusters",
    "score_call",
    "score_tier2_market",
]
