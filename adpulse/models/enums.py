"""
Enumeration definitions for the adpulse refresh service.

All enums inherit from both `str` and `Enum` to ensure JSON serialization
compatibility with Pydantic models, so values round-trip unchanged through the
JSON documents on disk and the API responses.
"""

from enum import Enum


class Provider(str, Enum):
    """
    External metrics providers polled on every refresh cycle.

    - google: Google Ads account metrics
    - meta: Meta Ads campaign totals
    - calendly: Booked call metrics
    - stripe: Revenue metrics
    """
    GOOGLE = "google"
    META = "meta"
    CALENDLY = "calendly"
    STRIPE = "stripe"

    @property
    def label(self) -> str:
        return _PROVIDER_LABELS[self]


_PROVIDER_LABELS = {
    Provider.GOOGLE: "Google Ads",
    Provider.META: "Meta Ads",
    Provider.CALENDLY: "Calendly",
    Provider.STRIPE: "Stripe",
}


class FetchStatus(str, Enum):
    """
    Tagged result of one provider fetch.

    - fresh: Fetched successfully this cycle
    - stale: Fetch failed; the fetcher supplied its last known value
    - unavailable: Fetch failed and no fallback value exists
    """
    FRESH = "fresh"
    STALE = "stale"
    UNAVAILABLE = "unavailable"


class AlertMetricType(str, Enum):
    """
    Metric types an alert threshold can watch.

    Each type maps to one normalized snapshot field and a direction; see
    METRIC_RULES in adpulse.services.anomaly_detector.
    """
    SPEND_INCREASE = "spend_increase"
    CTR_DROP = "ctr_drop"
    CONVERSION_DROP = "conversion_drop"
    COST_PER_CONVERSION_INCREASE = "cost_per_conversion_increase"
    REVENUE_DROP = "revenue_drop"


class Severity(str, Enum):
    """Anomaly severity, ordered low < medium < high."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class NotificationChannel(str, Enum):
    """
    Notification delivery mechanisms.

    - email: Delivered through the Resend HTTP API
    - chat_webhook: Delivered to a Slack incoming webhook
    """
    EMAIL = "email"
    CHAT_WEBHOOK = "chat_webhook"


class CycleStage(str, Enum):
    """States a refresh cycle passes through, in order."""
    UNAUTHENTICATED = "unauthenticated"
    RATE_CHECKED = "rate_checked"
    FETCHING = "fetching"
    MERGED = "merged"
    ALL_FAILED = "all_failed"
    CACHE_WRITE = "cache_write"
    HISTORY_UPDATE = "history_update"
    DETECT = "detect"
    NOTIFY = "notify"
    DONE = "done"


class CycleOutcome(str, Enum):
    """
    Terminal outcome of a refresh cycle.

    - completed: The pipeline ran (possibly with per-provider failures)
    - unauthorized: Rejected by the authorizer, no steps executed
    - rate_limited: Rejected by the rate limiter, no steps executed
    """
    COMPLETED = "completed"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
