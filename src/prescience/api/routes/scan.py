"""Tier-1 deep scan feed."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from prescience.agent.pipeline import Pipeline
from prescience.api.errors import error_response
from prescience.core.dependencies import PipelineDep
from prescience.core.logging import get_logger
from prescience.processing.models import ScanMeta, ScanResult
from prescience.processing.tier1 import ENGINE

logger = get_logger(__name__)

router = APIRouter()


async def run_scan(
    pipeline: Pipeline, slug: str | None, limit: int | None, refresh: bool
) -> dict[str, Any] | JSONResponse:
    try:
        if slug:
            snapshot = await pipeline.tier1.scan_slug(slug)
            result = ScanResult(
                scan=[snapshot] if snapshot else [],
                meta=ScanMeta(
                    engine=ENGINE,
                    timestamp=datetime.now(UTC),
                    markets_scanned=1 if snapshot else 0,
                    deep_scanned=1 if snapshot else 0,
                ),
            )
        else:
            result = await pipeline.tier1.scan(limit=limit, force=refresh)
        return result.to_wire()
    except Exception as e:
        logger.exception("Scan failed", slug=slug)
        return error_response("Scan failed", e)


@router.get("/scan")
async def get_scan(
    pipeline: PipelineDep,
    slug: str | None = None,
    limit: int | None = Query(default=None, ge=1, le=500),
) -> Any:
    """Deep scan of the busiest active markets, or a single market by slug."""
    return await run_scan(pipeline, slug, limit, refresh=False)
