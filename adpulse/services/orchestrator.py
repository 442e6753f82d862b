"""
Refresh cycle orchestration.

One call to RefreshOrchestrator.run_cycle() is one cycle:

    UNAUTHENTICATED -> RATE_CHECKED -> FETCHING -> {MERGED | ALL_FAILED}
        -> (CACHE_WRITE) -> (HISTORY_UPDATE) -> (DETECT) -> (NOTIFY) -> DONE

- Authorization and rate limiting are the only fatal checks; a rejection
  returns immediately with CycleOutcome.UNAUTHORIZED / RATE_LIMITED and no
  other step runs.
- All fetchers run concurrently, each under the per-fetch deadline. A fetcher
  failure of any kind becomes that provider's entry in `errors`.
- When every provider failed, the cache and history are left untouched so a
  good cached snapshot is never overwritten with an empty one.
- Cache write, history update, detection and notification are best-effort:
  each failure is recorded in `stage_errors` and the next step still runs.

Every transition is emitted as a structured event (adpulse.core.events).
"""

import asyncio
import logging
from typing import Dict, List, Mapping, Optional

from adpulse.core.events import emit_event
from adpulse.models.enums import CycleOutcome, CycleStage, FetchStatus, NotificationChannel
from adpulse.models.schemas import (
    AggregateSnapshot,
    AlertSettings,
    Anomaly,
    CycleResult,
    DateRange,
    FetchOutcome,
    HistoryPoint,
    NotificationSummary,
    utc_now,
)
from adpulse.notifications.base import NotificationDispatcher
from adpulse.notifications.dispatch import dispatch_anomalies
from adpulse.services.alert_config import AlertConfigStore
from adpulse.services.anomaly_detector import AnomalyDetector
from adpulse.services.authorizer import RequestAuthorizer
from adpulse.services.errors import PersistenceFailure
from adpulse.services.fetchers import SourceFetcher
from adpulse.services.history_store import HistoryStore
from adpulse.services.rate_limiter import RateLimiter
from adpulse.services.snapshot_cache import SnapshotCache


logger = logging.getLogger(__name__)

DEFAULT_IDENTITY = 'cron-job'


def identity_from_headers(headers: Mapping[str, str]) -> str:
    """Rate-limit identity: first x-forwarded-for hop, else 'cron-job'."""
    forwarded = headers.get('x-forwarded-for') or ''
    first_hop = forwarded.split(',')[0].strip()
    return first_hop or DEFAULT_IDENTITY


class RefreshOrchestrator:
    """
    Runs refresh cycles over a fixed set of collaborators.

    Args:
        authorizer: Validates trigger headers.
        rate_limiter: Shared per-identity limiter.
        fetchers: One SourceFetcher per provider.
        cache: Latest aggregate snapshot store.
        history: Per-day history store (baseline input).
        detector: Anomaly detector.
        alert_config: Threshold and channel configuration.
        dispatchers: Channel implementations keyed by channel type.
        fetch_timeout: Per-fetch deadline in seconds.
        lookback_days: Length of the default fetch date range.
        serialize_cycles: Run at most one cycle at a time in this process.
    """

    def __init__(
        self,
        authorizer: RequestAuthorizer,
        rate_limiter: RateLimiter,
        fetchers: List[SourceFetcher],
        cache: SnapshotCache,
        history: HistoryStore,
        detector: AnomalyDetector,
        alert_config: AlertConfigStore,
        dispatchers: Dict[NotificationChannel, NotificationDispatcher],
        fetch_timeout: float = 30.0,
        lookback_days: int = 30,
        serialize_cycles: bool = True,
    ):
        self.authorizer = authorizer
        self.rate_limiter = rate_limiter
        self.fetchers = fetchers
        self.cache = cache
        self.history = history
        self.detector = detector
        self.alert_config = alert_config
        self.dispatchers = dispatchers
        self.fetch_timeout = fetch_timeout
        self.lookback_days = lookback_days
        self._cycle_lock: Optional[asyncio.Lock] = asyncio.Lock() if serialize_cycles else None

    # =========================================================================
    # Entry Point
    # =========================================================================

    async def run_cycle(
        self,
        headers: Mapping[str, str],
        identity: Optional[str] = None,
        date_range: Optional[DateRange] = None,
    ) -> CycleResult:
        """
        Run one refresh cycle.

        Args:
            headers: Trigger request headers (credentials, forwarding info).
            identity: Rate-limit identity; derived from headers if None.
            date_range: Range to fetch; the trailing lookback window if None.

        Returns:
            CycleResult summarizing the cycle. Never raises for per-provider,
            persistence or notification failures.
        """
        stages: List[CycleStage] = [CycleStage.UNAUTHENTICATED]

        if not self.authorizer.authorize(headers):
            emit_event("authorize", "rejected")
            return CycleResult(
                outcome=CycleOutcome.UNAUTHORIZED,
                stages=stages,
                message="Valid CRON_SECRET or API_SECRET_KEY required",
            )
        emit_event("authorize", "ok")

        identity = identity or identity_from_headers(headers)
        if not self.rate_limiter.allow(identity):
            emit_event("rate_limit", "rejected", identity=identity)
            return CycleResult(
                outcome=CycleOutcome.RATE_LIMITED,
                stages=stages,
                message="Too many requests. Please try again later.",
            )
        emit_event("rate_limit", "ok", identity=identity)
        stages.append(CycleStage.RATE_CHECKED)

        date_range = date_range or DateRange.trailing(self.lookback_days)

        if self._cycle_lock is None:
            return await self._run_pipeline(date_range, stages)
        async with self._cycle_lock:
            return await self._run_pipeline(date_range, stages)

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def _run_pipeline(self, date_range: DateRange, stages: List[CycleStage]) -> CycleResult:
        stage_errors: Dict[str, str] = {}

        stages.append(CycleStage.FETCHING)
        outcomes = await asyncio.gather(*(self._collect(fetcher, date_range) for fetcher in self.fetchers))

        aggregate = AggregateSnapshot.merge(list(outcomes), timestamp=utc_now())
        provider_status = {
            outcome.provider: 'fetched' if outcome.status == FetchStatus.FRESH else 'failed'
            for outcome in outcomes
        }

        cached = False
        history_updated = False
        anomalies: List[Anomaly] = []
        notifications = NotificationSummary()

        if not aggregate.any_provider_succeeded:
            stages.append(CycleStage.ALL_FAILED)
            emit_event("merge", "skipped_all_failed", failed=len(aggregate.errors))
        else:
            stages.append(CycleStage.MERGED)
            emit_event(
                "merge",
                "ok",
                fetched=len(aggregate.fresh_providers),
                failed=len(aggregate.errors),
            )

            stages.append(CycleStage.CACHE_WRITE)
            cached = self._write_cache(aggregate, stage_errors)

            stages.append(CycleStage.HISTORY_UPDATE)
            history_updated = await self._update_history(aggregate, stage_errors)

            settings = self._read_alert_settings(stage_errors)

            if settings is not None:
                stages.append(CycleStage.DETECT)
                anomalies = await self._detect(aggregate, settings, stage_errors)

                if anomalies:
                    stages.append(CycleStage.NOTIFY)
                    notifications = await self._notify(anomalies, settings, stage_errors)

        stages.append(CycleStage.DONE)
        result = CycleResult(
            outcome=CycleOutcome.COMPLETED,
            success=aggregate.any_provider_succeeded,
            timestamp=aggregate.timestamp,
            provider_status=provider_status,
            errors=aggregate.errors,
            cached=cached,
            history_updated=history_updated,
            anomalies=anomalies,
            notifications=notifications,
            stage_errors=stage_errors,
            stages=stages,
        )
        emit_event(
            "cycle",
            "done",
            success=result.success,
            cached=cached,
            anomalies=len(anomalies),
            delivered=notifications.delivered,
            failed=notifications.failed,
        )
        return result

    async def _collect(self, fetcher: SourceFetcher, date_range: DateRange) -> FetchOutcome:
        provider = fetcher.provider.value
        emit_event("fetch", "started", provider=provider)

        try:
            outcome = await fetcher.collect(date_range, timeout=self.fetch_timeout)
        except Exception as exc:
            # collect() already maps source errors; anything else is a bug in one fetcher
            logger.exception(f"Unexpected error fetching {provider}")
            outcome = FetchOutcome.unavailable(fetcher.provider, str(exc) or type(exc).__name__)

        if outcome.status == FetchStatus.FRESH:
            emit_event("fetch", "fetched", provider=provider)
        elif outcome.status == FetchStatus.STALE:
            emit_event("fetch", "stale", provider=provider, reason=outcome.reason)
        else:
            emit_event("fetch", "failed", provider=provider, reason=outcome.reason)
        return outcome

    def _write_cache(self, aggregate: AggregateSnapshot, stage_errors: Dict[str, str]) -> bool:
        try:
            written = self.cache.write(aggregate)
        except Exception as exc:
            logger.exception("Unexpected error writing snapshot cache")
            written = False
            stage_errors['cache_write'] = str(exc) or type(exc).__name__
        else:
            if not written:
                stage_errors['cache_write'] = 'Failed to persist metrics snapshot'

        emit_event("cache_write", "ok" if written else "failed")
        return written

    async def _update_history(self, aggregate: AggregateSnapshot, stage_errors: Dict[str, str]) -> bool:
        metric_date = aggregate.timestamp.date()
        failures: List[str] = []

        for provider in aggregate.fresh_providers:
            snapshot = aggregate.per_provider.get(provider)
            if snapshot is None:
                continue
            point = HistoryPoint(provider=provider, date=metric_date, fields=snapshot.fields)
            try:
                await self.history.upsert(point)
            except PersistenceFailure as exc:
                logger.error(f"History update failed for {provider.value}: {exc}")
                failures.append(f"{provider.value}: {exc}")

        if failures:
            stage_errors['history_update'] = '; '.join(failures)
            emit_event("history_update", "failed", failed=len(failures))
            return False

        emit_event("history_update", "ok", points=len(aggregate.fresh_providers), date=metric_date.isoformat())
        return True

    def _read_alert_settings(self, stage_errors: Dict[str, str]) -> Optional[AlertSettings]:
        try:
            return self.alert_config.read()
        except Exception as exc:
            logger.exception("Failed to load alert settings")
            stage_errors['detect'] = f"Failed to load alert settings: {exc}"
            emit_event("detect", "failed", reason="alert settings unavailable")
            return None

    async def _detect(
        self,
        aggregate: AggregateSnapshot,
        settings: AlertSettings,
        stage_errors: Dict[str, str],
    ) -> List[Anomaly]:
        try:
            anomalies = await self.detector.detect(aggregate, self.history, settings.thresholds)
        except Exception as exc:
            logger.exception("Anomaly detection failed")
            stage_errors['detect'] = str(exc) or type(exc).__name__
            emit_event("detect", "failed")
            return []

        emit_event("detect", "ok", anomalies=len(anomalies))
        return anomalies

    async def _notify(
        self,
        anomalies: List[Anomaly],
        settings: AlertSettings,
        stage_errors: Dict[str, str],
    ) -> NotificationSummary:
        try:
            summary = await dispatch_anomalies(
                anomalies,
                settings.channels,
                self.dispatchers,
                settings.dashboard_url,
            )
        except Exception as exc:
            logger.exception("Notification dispatch failed")
            stage_errors['notify'] = str(exc) or type(exc).__name__
            return NotificationSummary()

        if summary.failed:
            stage_errors['notify'] = f"{summary.failed} notification(s) failed"
        return summary
