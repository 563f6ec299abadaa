"""Public scorecard."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from prescience.api.errors import error_response
from prescience.core.dependencies import SettingsDep
from prescience.core.logging import get_logger
from prescience.scorecard.aggregator import run_scorecard
from prescience.storage.files import load_json

logger = get_logger(__name__)

router = APIRouter()


@router.get("/scorecard")
async def get_scorecard(settings: SettingsDep) -> Any:
    """Serve the cached snapshot verbatim; build one in memory if none exists yet."""
    cached = load_json(settings.scorecard_path, None)
    if cached is not None:
        return cached
    try:
        return run_scorecard(settings, dry_run=True).model_dump(mode="json")
    except Exception as e:
        logger.exception("Scorecard build failed")
        return error_response("Scorecard unavailable", e)
