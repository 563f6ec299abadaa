"""Hot-markets ticker."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Query

from prescience.api.errors import error_response
from prescience.core.dependencies import PipelineDep
from prescience.core.exceptions import UpstreamUnavailableError
from prescience.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

PULSE_MARKET_SAMPLE = 50


@router.get("/pulse")
async def get_pulse(
    pipeline: PipelineDep, limit: int = Query(default=10, ge=1, le=50)
) -> Any:
    """Top markets by 24h volume, with threat data from the latest cached scan."""
    client = pipeline.client
    try:
        markets = await client.list_active_markets(limit=PULSE_MARKET_SAMPLE)
        if not markets and client.last_error:
            raise UpstreamUnavailableError(
                f"Failed to fetch markets from Polymarket API: {client.last_error}"
            )
    except Exception as e:
        logger.exception("Pulse failed")
        return error_response("Pulse failed", e)

    latest = pipeline.tier1.cached()
    by_id = {s.condition_id: s for s in latest.scan} if latest else {}
    hot = sorted(markets, key=lambda m: m.volume_24h, reverse=True)[:limit]

    pulse = []
    for market in hot:
        snapshot = by_id.get(market.condition_id)
        pulse.append(
            {
                "question": market.question,
                "slug": market.slug,
                "conditionId": market.condition_id,
                "volume24hr": round(market.volume_24h),
                "currentPrices": market.current_prices,
                "threat_score": snapshot.threat_score if snapshot else None,
                "threat_level": snapshot.threat_level if snapshot else None,
                "flow_direction_v2": snapshot.flow_direction_v2 if snapshot else None,
            }
        )
    return {
        "pulse": pulse,
        "scan_available": latest is not None,
        "generated": datetime.now(UTC).isoformat(),
    }
