"""
Structured stage events for the refresh pipeline.

Every stage transition of a refresh cycle is logged once on the
``adpulse.events`` logger. The human-readable message goes through the normal
log format; the machine-readable payload is attached to the record as
``record.event`` so operators and tests can assert on stage outcomes without
parsing prose.

Usage:
    from adpulse.core.events import emit_event

    emit_event("fetch", "failed", provider="meta", reason="HTTP 502")
"""

import logging
from typing import Any, Dict


EVENT_LOGGER_NAME = "adpulse.events"

event_logger = logging.getLogger(EVENT_LOGGER_NAME)

# Statuses that indicate a degraded stage are logged at WARNING
_WARNING_STATUSES = {"failed", "stale", "rejected", "skipped_all_failed"}


def emit_event(stage: str, status: str, **fields: Any) -> Dict[str, Any]:
    """
    Emit one structured event for a pipeline stage.

    Args:
        stage: Pipeline stage name (authorize, rate_limit, fetch, merge,
            cache_write, history_update, detect, notify, cycle).
        status: Outcome of the stage (started, ok, fetched, failed, ...).
        **fields: Extra JSON-serializable context (provider, counts, reasons).

    Returns:
        The event payload that was attached to the log record.
    """
    payload: Dict[str, Any] = {"stage": stage, "status": status, **fields}
    level = logging.WARNING if status in _WARNING_STATUSES else logging.INFO

    details = " ".join(f"{key}={value}" for key, value in fields.items())
    message = f"[{stage}] {status}" + (f" {details}" if details else "")

    event_logger.log(level, message, extra={"event": payload})
    return payload
