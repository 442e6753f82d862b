"""
Exception taxonomy for the refresh pipeline.

- Unauthorized / RateLimited: fatal for a cycle, nothing else runs
- SourceUnavailable / SourceDataInvalid: one provider failed this cycle
- PersistenceFailure: a cache or history write did not durably succeed
- NotificationFailure: one channel failed to deliver one anomaly

Only the Source* errors and PersistenceFailure are raised across module
boundaries; the orchestrator catches them and records them in the cycle
result instead of aborting.
"""

from typing import Optional

from adpulse.models.enums import NotificationChannel, Provider


class RefreshError(Exception):
    """Base class for all refresh pipeline errors."""


class Unauthorized(RefreshError):
    """Missing or invalid trigger credential."""


class RateLimited(RefreshError):
    """Too many cycles requested by one identity within the window."""


class SourceError(RefreshError):
    """A provider fetch failed this cycle."""

    def __init__(self, provider: Provider, message: str):
        super().__init__(message)
        self.provider = provider
        self.message = message


class SourceUnavailable(SourceError):
    """Network, auth, HTTP status or timeout failure talking to a provider."""


class SourceDataInvalid(SourceError):
    """Provider answered, but with a malformed or non-success payload."""


class PersistenceFailure(RefreshError):
    """A cache or history write did not durably succeed."""


class NotificationFailure(RefreshError):
    """One channel failed to deliver one anomaly."""

    def __init__(self, channel: NotificationChannel, message: str, anomaly_id: Optional[str] = None):
        super().__init__(message)
        self.channel = channel
        self.anomaly_id = anomaly_id
