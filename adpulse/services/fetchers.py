"""
Source fetchers: one isolated failure domain per external metrics provider.

Each provider exposes a sibling HTTP endpoint that returns a normalized
object. HttpSourceFetcher calls it with httpx, unwraps the envelope and maps
the provider's payload onto the shared field vocabulary used by history and
anomaly detection:

| provider | endpoint               | normalized fields                                  |
|----------|------------------------|----------------------------------------------------|
| google   | /api/google-ads/metrics| impressions, clicks, spend, ctr (+ conversions)    |
| meta     | /api/meta-ads/metrics  | spend, conversions, cost_per_conversion, reach     |
| calendly | /api/calendly/events   | booked, completed, no_shows, conversion_rate       |
| stripe   | /api/stripe/revenue    | revenue, conversions, average_order_value, roas, profit |

Failure handling:
    fetch() raises SourceUnavailable (transport, HTTP status, timeout) or
    SourceDataInvalid (malformed or non-success payload). collect() wraps
    fetch() with the per-call deadline and the fetcher's own fallback policy
    and always returns a tagged FetchOutcome: Fresh, Stale (last good value
    younger than the fallback TTL) or Unavailable. The orchestrator never
    needs to know provider-specific cache keys.
"""

import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from adpulse.models.enums import Provider
from adpulse.models.schemas import DateRange, FetchOutcome, MetricSnapshot, utc_now
from adpulse.services.errors import SourceDataInvalid, SourceError, SourceUnavailable


logger = logging.getLogger(__name__)


# =============================================================================
# Payload Helpers
# =============================================================================

def _num(provider: Provider, payload: Dict[str, Any], key: str) -> float:
    """Required numeric field; strings like '1,234.5' are accepted."""
    if key not in payload or payload[key] is None:
        raise SourceDataInvalid(provider, f"Missing field '{key}' in {provider.value} payload")
    value = payload[key]
    if isinstance(value, bool):
        raise SourceDataInvalid(provider, f"Field '{key}' is not numeric")
    try:
        number = float(str(value).replace(',', ''))
    except (TypeError, ValueError) as exc:
        raise SourceDataInvalid(provider, f"Field '{key}' is not numeric: {value!r}") from exc
    # NaN and Infinity would serialize as null and poison the cache and history
    if not math.isfinite(number):
        raise SourceDataInvalid(provider, f"Field '{key}' is not a finite number: {value!r}")
    return number


def _optional_num(provider: Provider, payload: Dict[str, Any], key: str) -> Optional[float]:
    if payload.get(key) is None:
        return None
    return _num(provider, payload, key)


def unwrap_envelope(provider: Provider, payload: Any) -> Dict[str, Any]:
    """
    Extract the metrics object from a collaborator response.

    - `{success: true, data: {...}}` -> data
    - `{success: false, error}` or missing data -> SourceDataInvalid
    - `{error: ...}` without a success key -> SourceDataInvalid
    - any other dict is the metrics object itself
    """
    if not isinstance(payload, dict):
        raise SourceDataInvalid(provider, f"Expected a JSON object, got {type(payload).__name__}")

    if 'success' in payload:
        if payload.get('success') is not True:
            raise SourceDataInvalid(
                provider,
                str(payload.get('error') or f"Failed to fetch {provider.label} metrics"),
            )
        data = payload.get('data')
        if not isinstance(data, dict) or not data:
            raise SourceDataInvalid(provider, f"{provider.label} response has no data")
        return data

    if payload.get('error'):
        raise SourceDataInvalid(provider, str(payload['error']))

    return payload


def _date_range_from(payload: Dict[str, Any], requested: DateRange) -> DateRange:
    date_range = payload.get('dateRange')
    if isinstance(date_range, dict) and date_range.get('start') and date_range.get('end'):
        try:
            return DateRange(start=date_range['start'], end=date_range['end'])
        except ValueError:
            logger.warning(f"Ignoring unparseable dateRange {date_range!r}")
    return requested


# =============================================================================
# Fetcher Interface
# =============================================================================

class SourceFetcher(ABC):
    """
    Fetches one provider's metrics and owns that provider's fallback policy.

    Subclasses implement fetch(); callers use collect().

    Args:
        provider: Provider this fetcher serves.
        fallback_ttl_seconds: Max age of the last good snapshot served as Stale.
        clock: Monotonic time source (injectable for tests).
    """

    provider: Provider

    def __init__(
        self,
        provider: Provider,
        fallback_ttl_seconds: float = 900.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self.fallback_ttl_seconds = fallback_ttl_seconds
        self._clock = clock
        self._last_good: Optional[Tuple[float, MetricSnapshot]] = None

    @abstractmethod
    async def fetch(self, date_range: DateRange) -> MetricSnapshot:
        """
        Fetch fresh metrics for the range.

        Raises:
            SourceUnavailable: Transport, authentication or HTTP failure.
            SourceDataInvalid: Malformed or non-success response.
        """

    def remember(self, snapshot: MetricSnapshot) -> None:
        self._last_good = (self._clock(), snapshot)

    def fallback(self) -> Optional[MetricSnapshot]:
        """Last good snapshot if it is still within the fallback TTL."""
        if self._last_good is None:
            return None
        stored_at, snapshot = self._last_good
        if self._clock() - stored_at > self.fallback_ttl_seconds:
            return None
        return snapshot

    async def collect(self, date_range: DateRange, timeout: Optional[float] = None) -> FetchOutcome:
        """Run fetch() under the deadline and translate failures into a tagged outcome."""
        try:
            if timeout is not None:
                snapshot = await asyncio.wait_for(self.fetch(date_range), timeout=timeout)
            else:
                snapshot = await self.fetch(date_range)
        except asyncio.TimeoutError:
            reason = f"{self.provider.label} fetch timed out"
            if timeout is not None:
                reason += f" after {timeout:g}s"
        except SourceError as exc:
            reason = exc.message
        else:
            self.remember(snapshot)
            return FetchOutcome.fresh(snapshot)

        fallback = self.fallback()
        if fallback is not None:
            return FetchOutcome.stale(fallback, reason)
        return FetchOutcome.unavailable(self.provider, reason)


# =============================================================================
# HTTP Fetchers
# =============================================================================

class HttpSourceFetcher(SourceFetcher):
    """
    Fetcher for a sibling metrics endpoint under a shared base URL.

    Subclasses set `path` and implement normalize().
    """

    path: str = ''

    def __init__(
        self,
        provider: Provider,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        fallback_ttl_seconds: float = 900.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(provider, fallback_ttl_seconds=fallback_ttl_seconds, clock=clock)
        self.base_url = base_url.rstrip('/')
        self._client = client

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.path}"

    @abstractmethod
    def normalize(self, data: Dict[str, Any]) -> Dict[str, float]:
        """Map the provider payload onto the shared field vocabulary."""

    async def _get(self, params: Dict[str, str]) -> httpx.Response:
        headers = {'Cache-Control': 'no-cache'}
        if self._client is not None:
            return await self._client.get(self.url, params=params, headers=headers)
        async with httpx.AsyncClient() as client:
            return await client.get(self.url, params=params, headers=headers)

    async def fetch(self, date_range: DateRange) -> MetricSnapshot:
        params = {'startDate': date_range.start.isoformat(), 'endDate': date_range.end.isoformat()}
        try:
            response = await self._get(params)
        except httpx.HTTPError as exc:
            raise SourceUnavailable(self.provider, f"{self.provider.label} request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            if response.is_error:
                raise SourceUnavailable(
                    self.provider,
                    f"{self.provider.label} returned HTTP {response.status_code}",
                ) from exc
            raise SourceDataInvalid(self.provider, f"{self.provider.label} returned a non-JSON body") from exc

        if response.is_error:
            # Collaborators report auth and upstream failures as JSON errors
            detail = payload.get('error') if isinstance(payload, dict) else None
            message = f"{self.provider.label} returned HTTP {response.status_code}"
            raise SourceUnavailable(self.provider, f"{message}: {detail}" if detail else message)

        data = unwrap_envelope(self.provider, payload)
        fields = self.normalize(data)

        return MetricSnapshot(
            provider=self.provider,
            date_range=_date_range_from(data, date_range),
            fields=fields,
            raw=data,
            fetched_at=utc_now(),
        )


class GoogleAdsFetcher(HttpSourceFetcher):
    path = '/api/google-ads/metrics'

    def __init__(self, base_url: str, **kwargs: Any):
        super().__init__(Provider.GOOGLE, base_url, **kwargs)

    def normalize(self, data: Dict[str, Any]) -> Dict[str, float]:
        fields = {
            'impressions': _num(self.provider, data, 'impressions'),
            'clicks': _num(self.provider, data, 'clicks'),
            'spend': _num(self.provider, data, 'spend'),
            'ctr': _num(self.provider, data, 'ctr'),
        }
        conversions = _optional_num(self.provider, data, 'conversions')
        if conversions is not None:
            fields['conversions'] = conversions
        return fields


class MetaAdsFetcher(HttpSourceFetcher):
    path = '/api/meta-ads/metrics'

    def __init__(self, base_url: str, **kwargs: Any):
        super().__init__(Provider.META, base_url, **kwargs)

    def normalize(self, data: Dict[str, Any]) -> Dict[str, float]:
        totals = data.get('totals')
        if not isinstance(totals, dict):
            raise SourceDataInvalid(self.provider, "Meta Ads response has no totals")

        fields = {
            'spend': _num(self.provider, totals, 'spend'),
            'conversions': _num(self.provider, totals, 'whatsappConversations'),
            'cost_per_conversion': _num(self.provider, totals, 'avgCostPerConversation'),
            'reach': _num(self.provider, totals, 'reach'),
        }
        for source_key, field in (('leads', 'leads'), ('avgCostPerLead', 'cost_per_lead')):
            value = _optional_num(self.provider, totals, source_key)
            if value is not None:
                fields[field] = value
        return fields


class CalendlyFetcher(HttpSourceFetcher):
    path = '/api/calendly/events'

    def __init__(self, base_url: str, **kwargs: Any):
        super().__init__(Provider.CALENDLY, base_url, **kwargs)

    def normalize(self, data: Dict[str, Any]) -> Dict[str, float]:
        return {
            'booked': _num(self.provider, data, 'totalBooked'),
            'completed': _num(self.provider, data, 'completed'),
            'no_shows': _num(self.provider, data, 'noShows'),
            'conversion_rate': _num(self.provider, data, 'conversionRate'),
        }


class StripeFetcher(HttpSourceFetcher):
    path = '/api/stripe/revenue'

    def __init__(self, base_url: str, **kwargs: Any):
        super().__init__(Provider.STRIPE, base_url, **kwargs)

    def normalize(self, data: Dict[str, Any]) -> Dict[str, float]:
        return {
            'revenue': _num(self.provider, data, 'totalRevenue'),
            'conversions': _num(self.provider, data, 'totalConversions'),
            'average_order_value': _num(self.provider, data, 'averageOrderValue'),
            'roas': _num(self.provider, data, 'roas'),
            'profit': _num(self.provider, data, 'profit'),
        }


def build_default_fetchers(
    base_url: str,
    client: Optional[httpx.AsyncClient] = None,
    fallback_ttl_seconds: float = 900.0,
) -> List[SourceFetcher]:
    """One fetcher per provider, all sharing the same base URL and client."""
    return [
        fetcher_cls(base_url, client=client, fallback_ttl_seconds=fallback_ttl_seconds)
        for fetcher_cls in (GoogleAdsFetcher, MetaAdsFetcher, CalendlyFetcher, StripeFetcher)
    ]
