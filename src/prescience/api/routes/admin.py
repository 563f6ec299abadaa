"""Bearer-gated feeds for internal agents.

Same handlers and caches as the public feeds; ``refresh=true`` bypasses the cache.
"""

from typing import Any

from fastapi import APIRouter, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from prescience.api.routes.news import run_news
from prescience.api.routes.scan import run_scan
from prescience.api.routes.tier2 import run_tier2
from prescience.core.constants import ADMIN_RATE_LIMIT
from prescience.core.dependencies import AdminDep, PipelineDep

router = APIRouter(dependencies=[AdminDep])
limiter = Limiter(key_func=get_remote_address)


@router.get("/scan")
@limiter.limit(ADMIN_RATE_LIMIT)
async def admin_scan(
    request: Request,
    pipeline: PipelineDep,
    slug: str | None = None,
    limit: int | None = Query(default=None, ge=1, le=500),
    refresh: bool = False,
) -> Any:
    return await run_scan(pipeline, slug, limit, refresh=refresh)


@router.get("/tier2")
@limiter.limit(ADMIN_RATE_LIMIT)
async def admin_tier2(request: Request, pipeline: PipelineDep, refresh: bool = False) -> Any:
    return await run_tier2(pipeline, refresh=refresh)


@router.get("/news")
@limiter.limit(ADMIN_RATE_LIMIT)
async def admin_news(request: Request, pipeline: PipelineDep) -> Any:
    return await run_news(pipeline)
