"""
Core infrastructure package for the adpulse service.

Provides:
- Configuration management via pydantic-settings
- Optional async PostgreSQL connectivity via asyncpg (history table)
- Structured stage events over stdlib logging

FastAPI dependencies live in adpulse.core.dependencies and are imported from
there directly; they pull in the whole service layer.

Usage Examples:
    from adpulse.core import get_settings, emit_event

    settings = get_settings()
    emit_event("fetch", "started", provider="google")
"""

from adpulse.core.config import Settings, get_settings
from adpulse.core.database import close_db, ensure_schema, get_db_pool, init_db
from adpulse.core.events import EVENT_LOGGER_NAME, emit_event

__all__ = [
    "Settings",
    "get_settings",
    "init_db",
    "close_db",
    "get_db_pool",
    "ensure_schema",
    "EVENT_LOGGER_NAME",
    "emit_event",
]
