"""
Pytest configuration and shared fixtures for the adpulse test suite.

This module provides fixtures for all tests, supporting:
- Async test execution with pytest-asyncio
- Settings pointed at a temporary cache directory
- A mock asyncpg pool for the Postgres history store
- Controllable clocks, fake source fetchers and fake notification channels
- Snapshot and history builders

No test touches the network: HTTP fetchers run against httpx.MockTransport and
the Slack channel gets a fake WebhookClient factory.
"""

import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Union
from unittest.mock import AsyncMock, Mock

import pytest

from adpulse.core.config import Settings
from adpulse.models.enums import AlertMetricType, NotificationChannel, Provider, Severity
from adpulse.models.schemas import (
    Anomaly,
    DateRange,
    HistoryPoint,
    MetricSnapshot,
    NotificationChannelConfig,
)
from adpulse.notifications.base import NotificationDispatcher
from adpulse.services.errors import SourceUnavailable
from adpulse.services.fetchers import SourceFetcher


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Register custom markers.

    - integration: exercises the full FastAPI app through TestClient
    """
    config.addinivalue_line(
        'markers',
        'integration: marks tests that run the full FastAPI application'
    )


# ============================================================
# CLOCKS
# ============================================================

class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================
# SETTINGS FIXTURE
# ============================================================

@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """
    Settings for tests, isolated from the developer's .env.

    - cache documents live under tmp_path
    - both trigger credentials are set
    - no DATABASE_URL, so history uses the JSON store
    """
    return Settings(
        _env_file=None,
        cron_secret='test-cron-secret',
        api_secret_key='test-api-key',
        metrics_base_url='http://metrics.test',
        dashboard_url='https://dashboard.test',
        database_url=None,
        cache_dir=tmp_path,
        resend_api_key=None,
    )


# ============================================================
# DATABASE MOCK FIXTURES
# ============================================================

@pytest.fixture
def mock_db_pool() -> AsyncMock:
    """
    Create a mock asyncpg connection pool.

    Usage:
        async def test_query(mock_db_pool):
            conn = mock_db_pool.acquire.return_value.__aenter__.return_value
            conn.fetch.return_value = [{'provider': 'google', ...}]

    Methods Mocked:
        - pool.acquire(): Returns async context manager yielding the connection
        - conn.execute / fetch / fetchrow / fetchval
    """
    pool = AsyncMock()

    conn = AsyncMock()
    conn.execute = AsyncMock(return_value=None)
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetchval = AsyncMock(return_value=None)

    # acquire() is a plain call returning an async context manager
    acquire_context = AsyncMock()
    acquire_context.__aenter__ = AsyncMock(return_value=conn)
    acquire_context.__aexit__ = AsyncMock(return_value=None)
    pool.acquire = Mock(return_value=acquire_context)

    pool.close = AsyncMock(return_value=None)

    return pool


# ============================================================
# DATA BUILDERS
# ============================================================

TEST_RANGE = DateRange(start=date(2026, 1, 1), end=date(2026, 1, 31))


def make_snapshot(
    provider: Provider,
    fields: Optional[Dict[str, float]] = None,
    raw: Optional[Dict] = None,
) -> MetricSnapshot:
    fields = fields if fields is not None else {'impressions': 1000.0, 'spend': 50.0}
    return MetricSnapshot(
        provider=provider,
        date_range=TEST_RANGE,
        fields=fields,
        raw=raw if raw is not None else dict(fields),
    )


def make_history(
    provider: Provider,
    values: List[Dict[str, float]],
    end: date,
) -> List[HistoryPoint]:
    """History points ending the day before `end`, values given oldest first."""
    count = len(values)
    return [
        HistoryPoint(provider=provider, date=end - timedelta(days=count - index), fields=fields)
        for index, fields in enumerate(values)
    ]


def make_anomaly(anomaly_id: str = 'google-spend_increase-abc123') -> Anomaly:
    return Anomaly(
        id=anomaly_id,
        metric_type=AlertMetricType.SPEND_INCREASE,
        provider=Provider.GOOGLE,
        severity=Severity.LOW,
        previous_value=100.0,
        current_value=130.0,
        percent_change=30.0,
        title='Google Ads: Spend Increase',
        description='Spend increased by 30.0% from $100.00 to $130.00',
        detected_at=datetime(2026, 1, 28, 9, 0, tzinfo=timezone.utc),
    )


# ============================================================
# FAKE COLLABORATORS
# ============================================================

class FakeFetcher(SourceFetcher):
    """
    SourceFetcher returning scripted results.

    Each entry of `results` is used by one fetch() call, in order; the last
    entry repeats. An entry is either a fields dict (success) or an exception
    instance (raised).
    """

    def __init__(
        self,
        provider: Provider,
        results: List[Union[Dict[str, float], Exception]],
        fallback_ttl_seconds: float = 900.0,
        clock=None,
        delay: float = 0.0,
    ):
        kwargs = {'fallback_ttl_seconds': fallback_ttl_seconds}
        if clock is not None:
            kwargs['clock'] = clock
        super().__init__(provider, **kwargs)
        self.results = list(results)
        self.calls = 0
        self.delay = delay

    async def fetch(self, date_range: DateRange) -> MetricSnapshot:
        result = self.results[min(self.calls, len(self.results) - 1)]
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(result, Exception):
            raise result
        return make_snapshot(self.provider, result)


def failing_fetcher(provider: Provider, message: str = 'Connection refused') -> FakeFetcher:
    return FakeFetcher(provider, [SourceUnavailable(provider, message)])


class FakeDispatcher(NotificationDispatcher):
    """Notification channel that records calls and returns or raises a scripted result."""

    def __init__(self, channel: NotificationChannel, result: Union[bool, Exception] = True):
        self.channel = channel
        self.result = result
        self.sent: List[str] = []

    async def send(self, anomaly, config, dashboard_url: str = '') -> bool:
        self.sent.append(anomaly.id)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


@pytest.fixture
def enabled_channels() -> List[NotificationChannelConfig]:
    return [
        NotificationChannelConfig(
            channel=NotificationChannel.EMAIL,
            enabled=True,
            destination=['ops@example.com'],
        ),
        NotificationChannelConfig(
            channel=NotificationChannel.CHAT_WEBHOOK,
            enabled=True,
            destination='https://hooks.slack.com/services/T000/B000/XXXX',
        ),
    ]
