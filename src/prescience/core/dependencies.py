"""FastAPI dependencies for dependency injection."""

from __future__ import annotations

import hmac
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request

from prescience.agent.pipeline import Pipeline, build_pipeline
from prescience.config import Settings, get_settings
from prescience.core.logging import get_logger

logger = get_logger(__name__)

# Type aliases for cleaner dependency injection
SettingsDep = Annotated[Settings, Depends(get_settings)]

# Fallback when the app runs without its lifespan (e.g. mounted elsewhere)
_pipeline: Pipeline | None = None


def get_pipeline(request: Request) -> Pipeline:
    """Get the Pipeline from app.state (set during lifespan), or a lazy singleton."""
    state_pipeline = getattr(request.app.state, "pipeline", None)
    if state_pipeline is not None:
        return state_pipeline  # type: ignore[no-any-return]
    global _pipeline
    if _pipeline is None:
        _pipeline = build_pipeline(get_settings())
    return _pipeline


def require_admin(
    settings: SettingsDep,
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Bearer-token gate for admin feeds; 401 on a missing or wrong token."""
    expected = settings.admin_token.get_secret_value() if settings.admin_token else ""
    token = ""
    if authorization and authorization.startswith("Bearer "):
        token = authorization[len("Bearer ") :]
    if not expected or not token or not hmac.compare_digest(token, expected):
        logger.warning("Rejected admin request")
        raise HTTPException(status_code=401, detail="Unauthorized")


# Annotated dependencies for use in route handlers
PipelineDep = Annotated[Pipeline, Depends(get_pipeline)]
AdminDep = Depends(require_admin)
