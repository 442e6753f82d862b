"""
FastAPI router for the refresh trigger.

Implements GET/POST /api/cron/refresh-metrics. Both methods run one refresh
cycle and return the same body.

Auth:
- `Authorization: Bearer <CRON_SECRET>` or `x-api-key: <API_SECRET_KEY>`

Responses:
- 401 {success: false, error: "Unauthorized", message}
- 429 {success: false, error: "Rate limit exceeded", message}
- 200 {success, timestamp, data: {provider: "fetched"|"failed"}, errors?,
       cached, anomalies, notifications: {delivered, failed}}
- 500 {success: false, error: "Internal server error", timestamp} for
  unexpected exceptions only

The cycle runs under asyncio.shield: if the caller disconnects, the cycle
still completes server-side so cache, history and notification side effects
are not abandoned mid-way.
"""

import asyncio
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from adpulse.core.dependencies import OrchestratorDep
from adpulse.models.enums import CycleOutcome
from adpulse.models.schemas import utc_now
from adpulse.services.orchestrator import identity_from_headers


logger = logging.getLogger(__name__)

router = APIRouter()


@router.api_route("/api/cron/refresh-metrics", methods=["GET", "POST"])
async def refresh_metrics(request: Request, orchestrator: OrchestratorDep) -> JSONResponse:
    """
    Run one refresh cycle.

    Rate-limit identity is the first x-forwarded-for hop, or "cron-job" for
    direct scheduler calls.
    """
    headers = request.headers

    try:
        result = await asyncio.shield(
            orchestrator.run_cycle(headers, identity=identity_from_headers(headers))
        )
    except Exception:
        logger.exception("Refresh cycle failed with an unexpected error")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Internal server error",
                "timestamp": utc_now().isoformat(),
            },
        )

    if result.outcome == CycleOutcome.UNAUTHORIZED:
        return JSONResponse(
            status_code=401,
            content={
                "success": False,
                "error": "Unauthorized",
                "message": result.message,
            },
        )

    if result.outcome == CycleOutcome.RATE_LIMITED:
        return JSONResponse(
            status_code=429,
            content={
                "success": False,
                "error": "Rate limit exceeded",
                "message": result.message,
            },
        )

    return JSONResponse(status_code=200, content=result.to_response())
