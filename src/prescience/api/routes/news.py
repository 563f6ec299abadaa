"""Synthesised news feed."""

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


async def run_news(pipeline: Pipeline) -> dict[str, Any] | JSONResponse:
    try:
        feed = await pipeline.news.get_feed()
        return feed.to_wire()
    except Exception as e:
        logger.exception("News feed failed")
        return error_response("News feed failed", e)


@router.get("/news")
async def get_news(pipeline: PipelineDep) -> Any:
    return await run_news(pipeline)
