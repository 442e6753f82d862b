"""
FastAPI router serving the cached aggregate snapshot.

GET /api/metrics/cached returns the last snapshot written by a refresh cycle
without contacting any provider:

    {
        "success": true,
        "data": {"google": {...raw payload...}, "meta": null, ...},
        "fields": {"google": {"spend": 50.0, ...}, "meta": null, ...},
        "timestamp": "2026-01-28T09:00:00+00:00",
        "timeSinceUpdate": "5 minutes ago",
        "stale": false,
        "errors": {"meta": "..."}            # only when the cycle had failures
    }

`stale` is true once the snapshot is older than STALE_AFTER_HOURS; whether to
trigger a new cycle is left to the caller. An empty cache returns 404.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from adpulse.core.dependencies import SettingsDep, SnapshotCacheDep
from adpulse.models.schemas import utc_now
from adpulse.services.snapshot_cache import humanize_age


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/metrics/cached")
async def get_cached_metrics(cache: SnapshotCacheDep, settings: SettingsDep) -> JSONResponse:
    snapshot, timestamp = cache.read()

    if snapshot is None or timestamp is None:
        return JSONResponse(
            status_code=404,
            content={
                "success": False,
                "error": "No cached data available",
                "message": "Metrics have not been refreshed yet. Trigger /api/cron/refresh-metrics first.",
            },
        )

    now = utc_now()
    age_hours = (now - timestamp).total_seconds() / 3600

    body: Dict[str, Any] = {
        "success": True,
        "data": {
            provider.value: (entry.raw if entry is not None else None)
            for provider, entry in snapshot.per_provider.items()
        },
        "fields": {
            provider.value: (dict(entry.fields) if entry is not None else None)
            for provider, entry in snapshot.per_provider.items()
        },
        "timestamp": timestamp.isoformat(),
        "timeSinceUpdate": humanize_age(timestamp, now),
        "stale": age_hours >= settings.stale_after_hours,
    }
    if snapshot.errors:
        body["errors"] = {provider.value: error for provider, error in snapshot.errors.items()}

    return JSONResponse(content=body)
