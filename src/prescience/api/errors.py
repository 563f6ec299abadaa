"""JSON error bodies shared by all routes."""

from __future__ import annotations

from fastapi.responses import JSONResponse

from prescience.core.exceptions import PrescienceError


def error_response(error: str, exc: Exception, status_code: int = 500) -> JSONResponse:
    """``{"error": ..., "detail": ...}`` with the given status (500 by default)."""
    detail = exc.message if isinstance(exc, PrescienceError) else str(exc)
    return JSONResponse(status_code=status_code, content={"error": error, "detail": detail})
