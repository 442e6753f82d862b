"""
adpulse API package.

Router modules:
- refresh: GET/POST /api/cron/refresh-metrics
- metrics: GET /api/metrics/cached
- alerts: GET/POST /api/settings/alerts
"""

from fastapi import APIRouter

from adpulse.api.alerts import router as alerts_router
from adpulse.api.metrics import router as metrics_router
from adpulse.api.refresh import router as refresh_router

api_router = APIRouter()

api_router.include_router(refresh_router, tags=["refresh"])
api_router.include_router(metrics_router, tags=["metrics"])
api_router.include_router(alerts_router, tags=["alerts"])

__all__ = [
    "api_router",
    "refresh_router",
    "metrics_router",
    "alerts_router",
]
