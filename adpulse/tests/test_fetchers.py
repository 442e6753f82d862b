"""
Tests for the source fetchers.

The HTTP fetchers run against httpx.MockTransport, so these tests cover:
1. Envelope handling ({success, data}, {error}, bare objects)
2. Field normalization per provider
3. Transport, HTTP status and payload failures mapped to Source* errors
4. collect(): Fresh / Stale / Unavailable outcomes, deadline handling
"""

from typing import Any, Callable, Dict

import httpx
import pytest

from adpulse.models.enums import FetchStatus, Provider
from adpulse.models.schemas import DateRange
from adpulse.services.errors import SourceDataInvalid, SourceUnavailable
from adpulse.services.fetchers import (
    CalendlyFetcher,
    GoogleAdsFetcher,
    MetaAdsFetcher,
    StripeFetcher,
    build_default_fetchers,
    unwrap_envelope,
)
from adpulse.tests.conftest import TEST_RANGE, FakeClock, FakeFetcher


BASE_URL = 'http://metrics.test'


def client_for(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def json_handler(payload: Any, status_code: int = 200) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=payload)
    return handler


GOOGLE_PAYLOAD: Dict[str, Any] = {
    'success': True,
    'data': {
        'impressions': 1000,
        'clicks': 50,
        'spend': 125.5,
        'ctr': 5.0,
        'conversions': 4,
        'dateRange': {'start': '2026-01-01', 'end': '2026-01-31'},
    },
}


# =============================================================================
# Envelope Handling
# =============================================================================

class TestUnwrapEnvelope:

    def test_success_envelope_returns_data(self) -> None:
        assert unwrap_envelope(Provider.GOOGLE, {'success': True, 'data': {'spend': 1}}) == {'spend': 1}

    def test_unsuccessful_envelope_is_invalid(self) -> None:
        with pytest.raises(SourceDataInvalid) as exc_info:
            unwrap_envelope(Provider.GOOGLE, {'success': False, 'error': 'Token expired'})

        assert exc_info.value.message == 'Token expired'
        assert exc_info.value.provider == Provider.GOOGLE

    def test_success_without_data_is_invalid(self) -> None:
        with pytest.raises(SourceDataInvalid):
            unwrap_envelope(Provider.GOOGLE, {'success': True})

    def test_bare_error_object_is_invalid(self) -> None:
        with pytest.raises(SourceDataInvalid):
            unwrap_envelope(Provider.STRIPE, {'error': 'Stripe not configured'})

    def test_bare_metrics_object_is_the_data(self) -> None:
        payload = {'totalRevenue': 10}
        assert unwrap_envelope(Provider.STRIPE, payload) is payload

    def test_non_object_is_invalid(self) -> None:
        with pytest.raises(SourceDataInvalid):
            unwrap_envelope(Provider.STRIPE, [1, 2, 3])


# =============================================================================
# HTTP Fetchers
# =============================================================================

class TestHttpFetchers:

    @pytest.mark.asyncio
    async def test_google_fetch_normalizes_fields(self) -> None:
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=GOOGLE_PAYLOAD)

        async with client_for(handler) as client:
            fetcher = GoogleAdsFetcher(BASE_URL, client=client)
            snapshot = await fetcher.fetch(TEST_RANGE)

        assert snapshot.provider == Provider.GOOGLE
        assert snapshot.fields == {
            'impressions': 1000.0,
            'clicks': 50.0,
            'spend': 125.5,
            'ctr': 5.0,
            'conversions': 4.0,
        }
        assert snapshot.raw == GOOGLE_PAYLOAD['data']

        request = requests[0]
        assert request.url.path == '/api/google-ads/metrics'
        assert request.url.params['startDate'] == '2026-01-01'
        assert request.url.params['endDate'] == '2026-01-31'
        assert request.headers['cache-control'] == 'no-cache'

    @pytest.mark.asyncio
    async def test_meta_fetch_reads_totals(self) -> None:
        payload = {
            'success': True,
            'data': {
                'campaigns': [],
                'totals': {
                    'spend': '1,250.75',
                    'whatsappConversations': 40,
                    'avgCostPerConversation': 31.27,
                    'reach': 12000,
                    'leads': 12,
                },
            },
        }
        async with client_for(json_handler(payload)) as client:
            snapshot = await MetaAdsFetcher(BASE_URL, client=client).fetch(TEST_RANGE)

        assert snapshot.fields['spend'] == pytest.approx(1250.75)
        assert snapshot.fields['conversions'] == 40.0
        assert snapshot.fields['cost_per_conversion'] == pytest.approx(31.27)
        assert snapshot.fields['reach'] == 12000.0
        assert snapshot.fields['leads'] == 12.0
        assert 'cost_per_lead' not in snapshot.fields

    @pytest.mark.asyncio
    async def test_calendly_bare_object(self) -> None:
        payload = {'totalBooked': 20, 'completed': 15, 'noShows': 3, 'conversionRate': 75.0}
        async with client_for(json_handler(payload)) as client:
            snapshot = await CalendlyFetcher(BASE_URL, client=client).fetch(TEST_RANGE)

        assert snapshot.fields == {
            'booked': 20.0,
            'completed': 15.0,
            'no_shows': 3.0,
            'conversion_rate': 75.0,
        }
        # No dateRange in the payload: the requested range is kept
        assert snapshot.date_range == TEST_RANGE

    @pytest.mark.asyncio
    async def test_stripe_bare_object(self) -> None:
        payload = {
            'totalRevenue': 5000,
            'totalConversions': 25,
            'averageOrderValue': 200,
            'roas': 4.0,
            'profit': 3750,
        }
        async with client_for(json_handler(payload)) as client:
            snapshot = await StripeFetcher(BASE_URL, client=client).fetch(TEST_RANGE)

        assert snapshot.fields['revenue'] == 5000.0
        assert snapshot.fields['conversions'] == 25.0
        assert snapshot.fields['roas'] == 4.0

    @pytest.mark.asyncio
    async def test_missing_required_field_is_invalid(self) -> None:
        payload = {'success': True, 'data': {'impressions': 1, 'clicks': 1, 'spend': 1}}
        async with client_for(json_handler(payload)) as client:
            with pytest.raises(SourceDataInvalid):
                await GoogleAdsFetcher(BASE_URL, client=client).fetch(TEST_RANGE)

    @pytest.mark.asyncio
    async def test_non_numeric_field_is_invalid(self) -> None:
        payload = {'totalBooked': 'lots', 'completed': 1, 'noShows': 0, 'conversionRate': 1}
        async with client_for(json_handler(payload)) as client:
            with pytest.raises(SourceDataInvalid):
                await CalendlyFetcher(BASE_URL, client=client).fetch(TEST_RANGE)

    @pytest.mark.asyncio
    async def test_non_finite_json_literal_is_invalid(self) -> None:
        body = (
            b'{"totalRevenue": 5000, "totalConversions": 25, '
            b'"averageOrderValue": NaN, "roas": Infinity, "profit": 3750}'
        )

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body, headers={'content-type': 'application/json'})

        async with client_for(handler) as client:
            with pytest.raises(SourceDataInvalid) as exc_info:
                await StripeFetcher(BASE_URL, client=client).fetch(TEST_RANGE)

        assert 'finite' in exc_info.value.message

    @pytest.mark.asyncio
    @pytest.mark.parametrize('value', ['NaN', 'inf', '-Infinity'])
    async def test_non_finite_string_is_invalid(self, value: str) -> None:
        payload = {'totalBooked': value, 'completed': 1, 'noShows': 0, 'conversionRate': 1}
        async with client_for(json_handler(payload)) as client:
            with pytest.raises(SourceDataInvalid):
                await CalendlyFetcher(BASE_URL, client=client).fetch(TEST_RANGE)

    @pytest.mark.asyncio
    async def test_non_finite_payload_collects_as_unavailable(self) -> None:
        payload = {
            'totalRevenue': 'Infinity',
            'totalConversions': 25,
            'averageOrderValue': 200,
            'roas': 4.0,
            'profit': 3750,
        }
        async with client_for(json_handler(payload)) as client:
            outcome = await StripeFetcher(BASE_URL, client=client).collect(TEST_RANGE)

        assert outcome.status == FetchStatus.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_http_error_status_is_unavailable(self) -> None:
        payload = {'success': False, 'error': 'Google Ads not connected'}
        async with client_for(json_handler(payload, status_code=401)) as client:
            with pytest.raises(SourceUnavailable) as exc_info:
                await GoogleAdsFetcher(BASE_URL, client=client).fetch(TEST_RANGE)

        assert '401' in exc_info.value.message
        assert 'Google Ads not connected' in exc_info.value.message

    @pytest.mark.asyncio
    async def test_non_json_error_page_is_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text='<html>Bad Gateway</html>')

        async with client_for(handler) as client:
            with pytest.raises(SourceUnavailable):
                await StripeFetcher(BASE_URL, client=client).fetch(TEST_RANGE)

    @pytest.mark.asyncio
    async def test_non_json_success_body_is_invalid(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text='ok')

        async with client_for(handler) as client:
            with pytest.raises(SourceDataInvalid):
                await StripeFetcher(BASE_URL, client=client).fetch(TEST_RANGE)

    @pytest.mark.asyncio
    async def test_transport_error_is_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError('Connection refused', request=request)

        async with client_for(handler) as client:
            with pytest.raises(SourceUnavailable):
                await MetaAdsFetcher(BASE_URL, client=client).fetch(TEST_RANGE)

    def test_build_default_fetchers_covers_every_provider(self) -> None:
        fetchers = build_default_fetchers(BASE_URL + '/')

        assert [fetcher.provider for fetcher in fetchers] == list(Provider)
        assert fetchers[0].url == 'http://metrics.test/api/google-ads/metrics'


# =============================================================================
# collect(): Tagged Outcomes
# =============================================================================

class TestCollect:

    @pytest.mark.asyncio
    async def test_success_is_fresh(self) -> None:
        fetcher = FakeFetcher(Provider.GOOGLE, [{'spend': 10.0}])

        outcome = await fetcher.collect(TEST_RANGE)

        assert outcome.status == FetchStatus.FRESH
        assert outcome.snapshot.fields == {'spend': 10.0}
        assert outcome.reason is None

    @pytest.mark.asyncio
    async def test_failure_without_fallback_is_unavailable(self) -> None:
        fetcher = FakeFetcher(Provider.META, [SourceUnavailable(Provider.META, 'HTTP 502')])

        outcome = await fetcher.collect(TEST_RANGE)

        assert outcome.status == FetchStatus.UNAVAILABLE
        assert outcome.snapshot is None
        assert outcome.reason == 'HTTP 502'

    @pytest.mark.asyncio
    async def test_failure_after_success_is_stale(self, clock: FakeClock) -> None:
        fetcher = FakeFetcher(
            Provider.META,
            [{'spend': 10.0}, SourceUnavailable(Provider.META, 'HTTP 502')],
            fallback_ttl_seconds=900,
            clock=clock,
        )

        await fetcher.collect(TEST_RANGE)
        clock.advance(600)
        outcome = await fetcher.collect(TEST_RANGE)

        assert outcome.status == FetchStatus.STALE
        assert outcome.snapshot.fields == {'spend': 10.0}
        assert outcome.reason == 'HTTP 502'

    @pytest.mark.asyncio
    async def test_expired_fallback_is_unavailable(self, clock: FakeClock) -> None:
        fetcher = FakeFetcher(
            Provider.META,
            [{'spend': 10.0}, SourceDataInvalid(Provider.META, 'bad payload')],
            fallback_ttl_seconds=900,
            clock=clock,
        )

        await fetcher.collect(TEST_RANGE)
        clock.advance(901)
        outcome = await fetcher.collect(TEST_RANGE)

        assert outcome.status == FetchStatus.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_timeout_is_treated_as_unavailable(self) -> None:
        fetcher = FakeFetcher(Provider.STRIPE, [{'revenue': 1.0}], delay=1.0)

        outcome = await fetcher.collect(TEST_RANGE, timeout=0.01)

        assert outcome.status == FetchStatus.UNAVAILABLE
        assert 'timed out' in outcome.reason


class TestDateRange:

    def test_reversed_range_is_swapped(self) -> None:
        date_range = DateRange(start='2026-01-31', end='2026-01-01')

        assert date_range.start.isoformat() == '2026-01-01'
        assert date_range.end.isoformat() == '2026-01-31'

    def test_trailing_range(self) -> None:
        date_range = DateRange.trailing(30, today=TEST_RANGE.end)

        assert date_range.end == TEST_RANGE.end
        assert (date_range.end - date_range.start).days == 30
