"""Tier-2 broad anomaly index."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from prescience.agent.pipeline import Pipeline
from prescience.api.errors import error_response
from prescience.core.dependencies import PipelineDep
from prescience.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


async def run_tier2(pipeline: Pipeline, refresh: bool) -> dict[str, Any] | JSONResponse:
    try:
        result = await pipeline.tier2.scan(force=refresh)
        return result.to_wire()
    except Exception as e:
        logger.exception("Tier-2 scan failed")
        return error_response("Tier-2 scan failed", e)


@router.get("/tier2")
async def get_tier2(pipeline: PipelineDep) -> Any:
    """Anomaly index; served from cache for up to two hours."""
    return await run_tier2(pipeline, refresh=False)
