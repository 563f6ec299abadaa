"""Top-level API router: mounts all domain routers at the site root."""

from fastapi import APIRouter

from prescience.api.routes import (
    admin,
    correlations,
    news,
    pulse,
    scan,
    scorecard,
    system,
    tier2,
)

api_router = APIRouter()
api_router.include_router(scan.router, tags=["scan"])
api_router.include_router(tier2.router, tags=["tier2"])
api_router.include_router(news.router, tags=["news"])
api_router.include_router(scorecard.router, tags=["scorecard"])
api_router.include_router(pulse.router, tags=["pulse"])
api_router.include_router(correlations.router, tags=["correlations"])
api_router.include_router(system.router, prefix="/system", tags=["system"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
