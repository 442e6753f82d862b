"""
Pydantic schemas for the adpulse refresh service.

These models are the single source of truth for the data that flows through a
refresh cycle and for the JSON documents persisted on disk:

- MetricSnapshot / AggregateSnapshot: per-provider and merged fetch results
- FetchOutcome: tagged fresh / stale / unavailable result of one fetch
- HistoryPoint: one provider's values for one calendar day
- AlertThreshold / NotificationChannelConfig / AlertSettings: alert configuration
- Anomaly: detector output
- DeliveryRecord / NotificationSummary: notification fan-out results
- CycleResult: terminal summary of one cycle

Snapshots are frozen: a cycle replaces the cached aggregate wholesale instead
of mutating it.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from adpulse.models.enums import (
    AlertMetricType,
    CycleOutcome,
    CycleStage,
    FetchStatus,
    NotificationChannel,
    Provider,
    Severity,
)


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


# =============================================================================
# Snapshot Models
# =============================================================================

class DateRange(BaseModel):
    """Inclusive calendar date range requested from a provider."""
    model_config = ConfigDict(frozen=True)

    start: date = Field(..., description="First day of the range")
    end: date = Field(..., description="Last day of the range")

    @model_validator(mode='before')
    @classmethod
    def _order_bounds(cls, data: Any) -> Any:
        # A reversed range is swapped rather than rejected
        if isinstance(data, dict):
            start, end = data.get('start'), data.get('end')
            if isinstance(start, str):
                start = date.fromisoformat(start)
            if isinstance(end, str):
                end = date.fromisoformat(end)
            if isinstance(start, date) and isinstance(end, date) and start > end:
                return {**data, 'start': end, 'end': start}
        return data

    @classmethod
    def trailing(cls, days: int, today: Optional[date] = None) -> 'DateRange':
        """The `days`-long range ending on `today` (UTC)."""
        end = today or utc_now().date()
        return cls(start=end - timedelta(days=days), end=end)


class MetricSnapshot(BaseModel):
    """One provider's normalized metrics for a date range."""
    model_config = ConfigDict(frozen=True)

    provider: Provider = Field(..., description="Provider that produced the metrics")
    date_range: DateRange = Field(..., description="Date range the metrics cover")
    fields: Dict[str, float] = Field(
        default_factory=dict,
        description="Normalized numeric metrics (spend, ctr, conversions, ...)"
    )
    raw: Dict[str, Any] = Field(
        default_factory=dict,
        description="Provider payload as returned, served by the cached metrics endpoint"
    )
    fetched_at: datetime = Field(default_factory=utc_now)


class FetchOutcome(BaseModel):
    """Tagged result of one provider fetch: Fresh, Stale or Unavailable."""
    model_config = ConfigDict(frozen=True)

    provider: Provider
    status: FetchStatus
    snapshot: Optional[MetricSnapshot] = None
    reason: Optional[str] = None

    @classmethod
    def fresh(cls, snapshot: MetricSnapshot) -> 'FetchOutcome':
        return cls(provider=snapshot.provider, status=FetchStatus.FRESH, snapshot=snapshot)

    @classmethod
    def stale(cls, snapshot: MetricSnapshot, reason: str) -> 'FetchOutcome':
        return cls(
            provider=snapshot.provider,
            status=FetchStatus.STALE,
            snapshot=snapshot,
            reason=reason,
        )

    @classmethod
    def unavailable(cls, provider: Provider, reason: str) -> 'FetchOutcome':
        return cls(provider=provider, status=FetchStatus.UNAVAILABLE, reason=reason)


class AggregateSnapshot(BaseModel):
    """
    Merged result of all providers for one refresh cycle.

    Only usable downstream when any_provider_succeeded is True; otherwise the
    previously cached aggregate must be served instead.
    """
    model_config = ConfigDict(frozen=True)

    per_provider: Dict[Provider, Optional[MetricSnapshot]] = Field(default_factory=dict)
    errors: Dict[Provider, str] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)
    any_provider_succeeded: bool = False
    fresh_providers: List[Provider] = Field(
        default_factory=list,
        description="Providers fetched successfully this cycle (excludes stale fallbacks)"
    )

    @classmethod
    def merge(
        cls,
        outcomes: List[FetchOutcome],
        timestamp: Optional[datetime] = None,
    ) -> 'AggregateSnapshot':
        """Build the aggregate from one cycle's fetch outcomes."""
        per_provider: Dict[Provider, Optional[MetricSnapshot]] = {}
        errors: Dict[Provider, str] = {}
        fresh: List[Provider] = []

        for outcome in outcomes:
            per_provider[outcome.provider] = outcome.snapshot
            if outcome.status == FetchStatus.FRESH:
                fresh.append(outcome.provider)
            else:
                errors[outcome.provider] = outcome.reason or 'Unknown error'

        return cls(
            per_provider=per_provider,
            errors=errors,
            timestamp=timestamp or utc_now(),
            any_provider_succeeded=bool(fresh),
            fresh_providers=fresh,
        )


# =============================================================================
# History Models
# =============================================================================

class HistoryPoint(BaseModel):
    """One provider's metric values for one calendar day."""
    provider: Provider
    date: date
    fields: Dict[str, float] = Field(default_factory=dict)


# =============================================================================
# Alert Configuration Models
# =============================================================================

class AlertThreshold(BaseModel):
    """Configured rule mapping a metric type to a percentage change."""
    id: str = Field(..., description="Stable identifier, e.g. 'spend-increase'")
    name: str = Field(default='', description="Display name")
    metric_type: AlertMetricType
    enabled: bool = True
    threshold_percent: float = Field(..., ge=0, description="Percent change that fires the alert")
    description: str = ''


class NotificationChannelConfig(BaseModel):
    """Delivery settings for one channel."""
    channel: NotificationChannel
    enabled: bool = False
    destination: Union[str, List[str]] = Field(
        default='',
        description="Webhook URL for chat_webhook, recipient list for email"
    )

    def recipients(self) -> List[str]:
        """Destination as a list of non-empty addresses."""
        if isinstance(self.destination, str):
            values = [self.destination]
        else:
            values = list(self.destination)
        return [value.strip() for value in values if value and value.strip()]


class AlertSettings(BaseModel):
    """Persisted alert configuration: thresholds and channels."""
    thresholds: List[AlertThreshold] = Field(default_factory=list)
    channels: List[NotificationChannelConfig] = Field(default_factory=list)
    dashboard_url: str = 'http://localhost:3000'

    def enabled_thresholds(self) -> List[AlertThreshold]:
        return [threshold for threshold in self.thresholds if threshold.enabled]

    def enabled_channels(self) -> List[NotificationChannelConfig]:
        return [config for config in self.channels if config.enabled and config.recipients()]


# =============================================================================
# Detection and Notification Models
# =============================================================================

class Anomaly(BaseModel):
    """One threshold firing for one provider in one cycle."""
    id: str
    metric_type: AlertMetricType
    provider: Provider
    severity: Severity
    previous_value: float = Field(..., description="Baseline value from history")
    current_value: float
    percent_change: float
    title: str
    description: str
    detected_at: datetime = Field(default_factory=utc_now)


class DeliveryRecord(BaseModel):
    """Result of delivering one anomaly to one channel."""
    anomaly_id: str
    channel: NotificationChannel
    delivered: bool
    error: Optional[str] = None


class NotificationSummary(BaseModel):
    """Best-effort delivery counts for one cycle."""
    delivered: int = 0
    failed: int = 0
    records: List[DeliveryRecord] = Field(default_factory=list)


# =============================================================================
# Cycle Result
# =============================================================================

class CycleResult(BaseModel):
    """Structured summary of one refresh cycle."""
    outcome: CycleOutcome
    success: bool = False
    timestamp: datetime = Field(default_factory=utc_now)
    provider_status: Dict[Provider, str] = Field(
        default_factory=dict,
        description="'fetched' or 'failed' per provider"
    )
    errors: Dict[Provider, str] = Field(default_factory=dict)
    cached: bool = False
    history_updated: bool = False
    anomalies: List[Anomaly] = Field(default_factory=list)
    notifications: NotificationSummary = Field(default_factory=NotificationSummary)
    stage_errors: Dict[str, str] = Field(
        default_factory=dict,
        description="Best-effort stage failures (cache_write, history_update, detect, notify)"
    )
    stages: List[CycleStage] = Field(default_factory=list)
    message: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        """Trigger endpoint body for a completed cycle."""
        body: Dict[str, Any] = {
            'success': self.success,
            'timestamp': self.timestamp.isoformat(),
            'data': {provider.value: status for provider, status in self.provider_status.items()},
            'cached': self.cached,
            'anomalies': len(self.anomalies),
            'notifications': {
                'delivered': self.notifications.delivered,
                'failed': self.notifications.failed,
            },
        }
        if self.errors:
            body['errors'] = {provider.value: error for provider, error in self.errors.items()}
        if self.stage_errors:
            body['stageErrors'] = dict(self.stage_errors)
        return body
