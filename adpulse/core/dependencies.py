"""
FastAPI dependency injection module for the adpulse refresh service.

This module wires the refresh pipeline's collaborators together and exposes
them to endpoint handlers as FastAPI dependencies, so tests can replace any of
them with `app.dependency_overrides`.

Key Dependencies Provided:
- SettingsDep: The cached Settings singleton
- OrchestratorDep: The process-wide RefreshOrchestrator
- SnapshotCacheDep: Latest aggregate snapshot store
- AlertConfigDep: Alert threshold and channel configuration store

Singletons:
The rate limiter, the fetchers (which hold their own fallback values) and the
orchestrator (which holds the cycle lock) must be shared by every request, so
they are built once via @lru_cache. The rate limiter in particular is the only
concurrently-mutated shared state: a per-request instance would never reject
anything.

Known limitation:
InMemoryRateLimiter is process-local. Running several workers multiplies the
effective cap by the worker count; a multi-instance deployment needs a shared
RateLimiter implementation.

Usage Examples:
    @router.get("/api/metrics/cached")
    async def get_cached_metrics(cache: SnapshotCacheDep, settings: SettingsDep):
        snapshot, timestamp = cache.read()
        ...
"""

from functools import lru_cache
from typing import Annotated, Dict

from fastapi import Depends

from adpulse.core.config import Settings, get_settings
from adpulse.models.enums import NotificationChannel
from adpulse.notifications.base import NotificationDispatcher
from adpulse.notifications.email_channel import EmailDispatcher
from adpulse.notifications.slack_channel import SlackWebhookDispatcher
from adpulse.services.alert_config import AlertConfigStore
from adpulse.services.anomaly_detector import AnomalyDetector
from adpulse.services.authorizer import RequestAuthorizer
from adpulse.services.fetchers import build_default_fetchers
from adpulse.services.history_store import HistoryStore, JsonHistoryStore, PostgresHistoryStore
from adpulse.services.orchestrator import RefreshOrchestrator
from adpulse.services.rate_limiter import InMemoryRateLimiter
from adpulse.services.snapshot_cache import SnapshotCache


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """Return the Settings singleton instance."""
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]


# =============================================================================
# Stores
# =============================================================================

def get_snapshot_cache(settings: SettingsDep) -> SnapshotCache:
    return SnapshotCache(settings.cache_dir)


def get_alert_config_store(settings: SettingsDep) -> AlertConfigStore:
    return AlertConfigStore(settings.cache_dir, settings.dashboard_url)


def build_history_store(settings: Settings) -> HistoryStore:
    """Postgres when DATABASE_URL is configured, otherwise the JSON file store."""
    if settings.database_url:
        return PostgresHistoryStore()
    return JsonHistoryStore(settings.cache_dir, retention_days=settings.history_retention_days)


SnapshotCacheDep = Annotated[SnapshotCache, Depends(get_snapshot_cache)]
AlertConfigDep = Annotated[AlertConfigStore, Depends(get_alert_config_store)]


# =============================================================================
# Pipeline Singletons
# =============================================================================

@lru_cache()
def get_rate_limiter() -> InMemoryRateLimiter:
    settings = get_settings()
    return InMemoryRateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


def build_dispatchers(settings: Settings) -> Dict[NotificationChannel, NotificationDispatcher]:
    return {
        NotificationChannel.EMAIL: EmailDispatcher(settings.resend_api_key, sender=settings.alert_email_from),
        NotificationChannel.CHAT_WEBHOOK: SlackWebhookDispatcher(),
    }


def build_orchestrator(settings: Settings, rate_limiter: InMemoryRateLimiter) -> RefreshOrchestrator:
    """Assemble a RefreshOrchestrator from settings."""
    return RefreshOrchestrator(
        authorizer=RequestAuthorizer(settings.cron_secret, settings.api_secret_key),
        rate_limiter=rate_limiter,
        fetchers=build_default_fetchers(
            settings.metrics_base_url,
            fallback_ttl_seconds=settings.fetcher_fallback_ttl_seconds,
        ),
        cache=SnapshotCache(settings.cache_dir),
        history=build_history_store(settings),
        detector=AnomalyDetector(
            baseline_points=settings.history_baseline_points,
            medium_multiplier=settings.severity_medium_multiplier,
            high_multiplier=settings.severity_high_multiplier,
        ),
        alert_config=AlertConfigStore(settings.cache_dir, settings.dashboard_url),
        dispatchers=build_dispatchers(settings),
        fetch_timeout=settings.fetch_timeout_seconds,
        lookback_days=settings.fetch_lookback_days,
        serialize_cycles=settings.serialize_cycles,
    )


@lru_cache()
def get_orchestrator() -> RefreshOrchestrator:
    """
    Return the process-wide RefreshOrchestrator.

    Note:
        To rebuild after changing settings in tests:
        >>> reset_singletons()
    """
    return build_orchestrator(get_settings(), get_rate_limiter())


def reset_singletons() -> None:
    """Drop cached settings and pipeline singletons."""
    get_orchestrator.cache_clear()
    get_rate_limiter.cache_clear()
    get_settings.cache_clear()


OrchestratorDep = Annotated[RefreshOrchestrator, Depends(get_orchestrator)]
