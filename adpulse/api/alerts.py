"""
FastAPI router for alert settings.

GET  /api/settings/alerts  -> {success, settings}
POST /api/settings/alerts  {action, data}

Actions:
- update-threshold:      data = {thresholdId, enabled?, thresholdPercent?}
- update-notifications:  data = {channels: [NotificationChannelConfig, ...]}
- update-all:            data = {settings: AlertSettings}

Unknown actions return 400 {success: false, error: "Invalid action"}; a
rejected update (unknown threshold id, invalid payload, failed write) returns
400 with an action-specific error. Changes apply from the next cycle.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from adpulse.core.dependencies import AlertConfigDep
from adpulse.models.schemas import AlertSettings, NotificationChannelConfig


logger = logging.getLogger(__name__)

router = APIRouter()

_CHANNELS_ADAPTER = TypeAdapter(List[NotificationChannelConfig])


class AlertSettingsUpdate(BaseModel):
    """Request body for POST /api/settings/alerts."""
    action: str = Field(..., description="update-threshold | update-notifications | update-all")
    data: Dict[str, Any] = Field(default_factory=dict)


def _error(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@router.get("/api/settings/alerts")
async def get_alert_settings(store: AlertConfigDep) -> Dict[str, Any]:
    return {"success": True, "settings": store.read().model_dump(mode="json")}


@router.post("/api/settings/alerts")
async def update_alert_settings(body: AlertSettingsUpdate, store: AlertConfigDep) -> JSONResponse:
    data = body.data

    if body.action == "update-threshold":
        threshold_id = data.get("thresholdId")
        # "threshold" is accepted as an older alias of "thresholdPercent"
        percent = data.get("thresholdPercent", data.get("threshold"))
        enabled = data.get("enabled")

        valid = (
            isinstance(threshold_id, str) and bool(threshold_id)
            and (enabled is None or isinstance(enabled, bool))
            and (percent is None or (isinstance(percent, (int, float)) and not isinstance(percent, bool)))
        )
        if not valid or not store.update_threshold(threshold_id, enabled=enabled, threshold_percent=percent):
            return _error("Failed to update threshold")

        logger.info(f"Alert threshold {threshold_id} updated")
        return JSONResponse(content={"success": True, "message": "Threshold updated successfully"})

    if body.action == "update-notifications":
        try:
            channels = _CHANNELS_ADAPTER.validate_python(
                data.get("channels", data.get("notificationChannels"))
            )
        except ValidationError as exc:
            logger.warning(f"Rejected notification channel update: {exc}")
            return _error("Failed to update notification channels")

        if not store.update_channels(channels):
            return _error("Failed to update notification channels")

        return JSONResponse(content={"success": True, "message": "Notification channels updated successfully"})

    if body.action == "update-all":
        try:
            settings = AlertSettings.model_validate(data.get("settings"))
        except ValidationError as exc:
            logger.warning(f"Rejected alert settings update: {exc}")
            return _error("Failed to update settings")

        if not store.write(settings):
            return _error("Failed to update settings")

        return JSONResponse(content={"success": True, "message": "Settings updated successfully"})

    return _error("Invalid action")
