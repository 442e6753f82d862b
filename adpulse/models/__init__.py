"""
Package initialization file for adpulse models.

Re-exports the enumerations and Pydantic schemas so other modules can import
them from adpulse.models directly.

Usage:
    from adpulse.models import Provider, MetricSnapshot, AggregateSnapshot
"""

# =============================================================================
# Enums
# =============================================================================

from adpulse.models.enums import (
    AlertMetricType,
    CycleOutcome,
    CycleStage,
    FetchStatus,
    NotificationChannel,
    Provider,
    Severity,
)

# =============================================================================
# Schemas
# =============================================================================

from adpulse.models.schemas import (
    AggregateSnapshot,
    AlertSettings,
    AlertThreshold,
    Anomaly,
    CycleResult,
    DateRange,
    DeliveryRecord,
    FetchOutcome,
    HistoryPoint,
    MetricSnapshot,
    NotificationChannelConfig,
    NotificationSummary,
    utc_now,
)

__all__ = [
    "AlertMetricType",
    "CycleOutcome",
    "CycleStage",
    "FetchStatus",
    "NotificationChannel",
    "Provider",
    "Severity",
    "AggregateSnapshot",
    "AlertSettings",
    "AlertThreshold",
    "Anomaly",
    "CycleResult",
    "DateRange",
    "DeliveryRecord",
    "FetchOutcome",
    "HistoryPoint",
    "MetricSnapshot",
    "NotificationChannelConfig",
    "NotificationSummary",
    "utc_now",
]
