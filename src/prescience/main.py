"""FastAPI application entry point."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from prescience import __version__
from prescience.agent import pipeline_lifespan
from prescience.api import api_router
from prescience.api.routes.admin import limiter
from prescience.config import get_settings
from prescience.core.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: builds the pipeline and starts the scheduler if enabled."""
    settings = get_settings()
    setup_logging(settings)

    async with pipeline_lifespan(settings) as pipeline:
        app.state.pipeline = pipeline
        logger.info("Prescience ready", env=settings.env, scheduler=settings.scheduler_enabled)
        yield


app = FastAPI(
    title="Prescience",
    description="Prediction-market anomaly scanner and signal pipeline",
    version=__version__,
    lifespan=lifespan,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]


@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness check: always ok if process is running."""
    return {"status": "ok"}


app.include_router(api_router)
