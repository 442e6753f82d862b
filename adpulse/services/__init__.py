"""
Refresh pipeline services.

Services:
- authorizer: Trigger credential check
- rate_limiter: Per-identity sliding-window limiter
- fetchers: One SourceFetcher per metrics provider
- snapshot_cache: Latest aggregate snapshot document
- history_store: Per-day metric history (JSON file or Postgres)
- alert_config: Alert thresholds and notification channels
- anomaly_detector: Threshold anomalies against the history baseline
- orchestrator: The refresh cycle state machine

The orchestrator depends on adpulse.notifications and is imported from
adpulse.services.orchestrator directly.
"""

# =============================================================================
# Errors
# =============================================================================

from adpulse.services.errors import (
    NotificationFailure,
    PersistenceFailure,
    RateLimited,
    RefreshError,
    SourceDataInvalid,
    SourceError,
    SourceUnavailable,
    Unauthorized,
)

# =============================================================================
# Pipeline Components
# =============================================================================

from adpulse.services.authorizer import RequestAuthorizer
from adpulse.services.rate_limiter import InMemoryRateLimiter, RateLimiter
from adpulse.services.fetchers import (
    CalendlyFetcher,
    GoogleAdsFetcher,
    HttpSourceFetcher,
    MetaAdsFetcher,
    SourceFetcher,
    StripeFetcher,
    build_default_fetchers,
)
from adpulse.services.snapshot_cache import SnapshotCache
from adpulse.services.history_store import HistoryStore, JsonHistoryStore, PostgresHistoryStore
from adpulse.services.alert_config import DEFAULT_ALERT_THRESHOLDS, AlertConfigStore, default_settings
from adpulse.services.anomaly_detector import (
    METRIC_RULES,
    AnomalyDetector,
    calculate_baseline,
    classify_severity,
    percent_change,
)
