"""Cross-market wallet correlation clusters."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query

from prescience.api.errors import error_response
from prescience.core.constants import (
    CORRELATION_MARKET_LIMIT,
    CORRELATION_MIN_SHARED_WALLETS,
    CORRELATION_WINDOW_HOURS,
)
from prescience.core.dependencies import PipelineDep
from prescience.core.exceptions import UpstreamUnavailableError
from prescience.core.logging import get_logger
from prescience.processing.correlation import SignalStrength, filter_by_strength

logger = get_logger(__name__)

router = APIRouter()


@router.get("/correlations")
async def get_correlations(
    pipeline: PipelineDep,
    window_hours: int = Query(default=CORRELATION_WINDOW_HOURS, ge=1, le=72),
    min_wallets: int = Query(default=CORRELATION_MIN_SHARED_WALLETS, ge=2, le=20),
    limit: int = Query(default=CORRELATION_MARKET_LIMIT, ge=10, le=150),
    min_strength: SignalStrength | None = None,
) -> Any:
    """Clusters of markets traded by the same wallets within the window."""
    latest = pipeline.tier1.cached()
    threat = {s.condition_id: s for s in latest.scan} if latest else {}
    try:
        result = await pipeline.correlations.analyze(
            window_hours=window_hours,
            min_shared_wallets=min_wallets,
            limit=limit,
            threat=threat,
        )
    except UpstreamUnavailableError as e:
        logger.error("Correlation market fetch failed", error=e.message)
        return error_response("Failed to fetch markets", e, status_code=503)
    except Exception as e:
        logger.exception("Correlation analysis failed")
        return error_response("Correlation analysis failed", e)

    if not result.meta.markets_analyzed:
        return {"clusters": [], "meta": {"error": "No markets available"}}

    clusters = filter_by_strength(result.clusters, min_strength)
    return {
        "clusters": [c.to_wire() for c in clusters],
        "meta": {
            **result.meta.to_wire(),
            "markets_in_clusters": len(
                {m.condition_id for c in clusters for m in c.markets}
            ),
            "params": {
                "window_hours": window_hours,
                "min_wallets": min_wallets,
                "limit": limit,
                "min_strength": min_strength,
            },
        },
    }
