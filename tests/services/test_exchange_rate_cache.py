"""
ExchangeRateCache state machine and the TrmClient upstream contract.

Time is driven by a DeterministicClock; the upstream is either the
scriptable FakeTrmFeed from conftest or httpx.MockTransport.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal

import httpx
import pytest

from rumbo_kernel.domain.values import ExchangeRateSnapshot
from rumbo_kernel.exceptions import ExchangeRateFetchError, ExchangeRateUnavailableError
from rumbo_kernel.services.exchange_rate_cache import (
    CacheState,
    ExchangeRateCache,
    RateLookupStatus,
    TrmClient,
)

MINUTE = 60


class TestFreshness:

    def test_empty_cache_fetches(self, rate_cache, trm_feed):
        trm_feed.push("4100.50")
        assert rate_cache.state == CacheState.EMPTY

        lookup = rate_cache.get_current_rate()

        assert lookup.status == RateLookupStatus.FRESH
        assert lookup.rate == Decimal("4100.50")
        assert trm_feed.calls == 1
        assert rate_cache.state == CacheState.FRESH

    def test_read_within_window_does_not_refetch(self, rate_cache, trm_feed, clock):
        trm_feed.push("4100.50").push("4200.00")
        rate_cache.get_current_rate()

        clock.advance(30 * MINUTE)
        lookup = rate_cache.get_current_rate()

        assert lookup.status == RateLookupStatus.FRESH
        assert lookup.rate == Decimal("4100.50")
        assert trm_feed.calls == 1

    def test_read_after_window_refetches(self, rate_cache, trm_feed, clock):
        trm_feed.push("4100.50").push("4200.00")
        rate_cache.get_current_rate()

        clock.advance(61 * MINUTE)
        assert rate_cache.state == CacheState.STALE
        lookup = rate_cache.get_current_rate()

        assert trm_feed.calls == 2
        assert lookup.status == RateLookupStatus.FRESH
        assert lookup.rate == Decimal("4200.00")

    def test_window_boundary_is_stale(self, rate_cache, trm_feed, clock):
        trm_feed.push("4100.50")
        rate_cache.get_current_rate()

        clock.advance(60 * MINUTE)

        assert rate_cache.state == CacheState.STALE

    def test_freshness_measured_from_store_time(self, rate_cache, trm_feed, clock):
        trm_feed.push("4100.50").push("4200.00")
        rate_cache.get_current_rate()
        clock.advance(61 * MINUTE)
        rate_cache.get_current_rate()

        assert rate_cache.snapshot.fetched_at == clock.now()

    def test_custom_ttl(self, trm_feed, clock):
        cache = ExchangeRateCache(fetcher=trm_feed, clock=clock, ttl_seconds=60)
        trm_feed.push("4100.50")
        cache.get_current_rate()
        clock.advance(61)
        cache.get_current_rate()
        assert trm_feed.calls == 2

    def test_rejects_non_positive_ttl(self, trm_feed, clock):
        with pytest.raises(ValueError):
            ExchangeRateCache(fetcher=trm_feed, clock=clock, ttl_seconds=0)


class TestFallback:

    def test_stale_and_failing_upstream_serves_previous_value(
        self, rate_cache, trm_feed, clock
    ):
        trm_feed.push("4100.50", effective=date(2024, 6, 3)).fail()
        rate_cache.get_current_rate()
        clock.advance(2 * 60 * MINUTE)

        lookup = rate_cache.get_current_rate()

        assert lookup.status == RateLookupStatus.STALE
        assert lookup.rate == Decimal("4100.50")
        assert lookup.snapshot.effective_date == date(2024, 6, 3)
        assert rate_cache.require_current_rate().rate == Decimal("4100.50")

    def test_stale_fallback_keeps_retrying_upstream(self, rate_cache, trm_feed, clock):
        trm_feed.push("4100.50").fail().push("4300.00")
        rate_cache.get_current_rate()
        clock.advance(61 * MINUTE)

        assert rate_cache.get_current_rate().status == RateLookupStatus.STALE
        lookup = rate_cache.get_current_rate()

        assert lookup.status == RateLookupStatus.FRESH
        assert lookup.rate == Decimal("4300.00")
        assert trm_feed.calls == 3

    def test_empty_and_failing_upstream_is_unavailable(self, rate_cache, trm_feed):
        trm_feed.fail()

        lookup = rate_cache.get_current_rate()

        assert lookup.status == RateLookupStatus.UNAVAILABLE
        assert not lookup.is_available
        assert lookup.rate is None
        assert rate_cache.state == CacheState.EMPTY

    def test_require_raises_rate_unavailable(self, rate_cache, trm_feed):
        trm_feed.fail()
        with pytest.raises(ExchangeRateUnavailableError) as exc_info:
            rate_cache.require_current_rate()
        assert exc_info.value.code == "RATE_UNAVAILABLE"

    def test_failures_are_logged(self, rate_cache, trm_feed, clock, captured_logs):
        trm_feed.push("4100.50").fail("upstream returned 500")
        rate_cache.get_current_rate()
        clock.advance(61 * MINUTE)
        rate_cache.get_current_rate()

        messages = [r["message"] for r in captured_logs()]
        assert "exchange_rate_fetch_failed" in messages
        assert "exchange_rate_served_stale" in messages
        failed = next(r for r in captured_logs() if r["message"] == "exchange_rate_fetch_failed")
        assert failed["reason"] == "upstream returned 500"


class TestRateLookupResponse:

    def test_as_response(self, rate_cache, trm_feed):
        trm_feed.push("4100.50", effective=date(2024, 6, 3))
        assert rate_cache.get_current_rate().as_response() == {
            "rate": "4100.50",
            "date": "2024-06-03",
            "source": "datos.gov.co",
        }

    def test_as_response_unavailable_raises(self, rate_cache, trm_feed):
        trm_feed.fail()
        with pytest.raises(ExchangeRateUnavailableError):
            rate_cache.get_current_rate().as_response()


class TestSingleFlight:

    def test_concurrent_stale_readers_trigger_one_fetch(self, clock):
        calls = []
        started = threading.Event()

        def slow_fetch():
            calls.append(1)
            started.set()
            time.sleep(0.2)
            return ExchangeRateSnapshot(
                rate=Decimal("4100.50"),
                effective_date=date(2024, 6, 3),
                fetched_at=clock.now(),
            )

        cache = ExchangeRateCache(fetcher=slow_fetch, clock=clock)
        barrier = threading.Barrier(8)

        def read():
            barrier.wait()
            return cache.get_current_rate()

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: read(), range(8)))

        assert len(calls) == 1
        assert all(r.status == RateLookupStatus.FRESH for r in results)
        assert {r.rate for r in results} == {Decimal("4100.50")}


# =============================================================================
# TrmClient against a mocked upstream
# =============================================================================


def _client(handler, clock) -> TrmClient:
    return TrmClient(
        url="https://trm.test/resource.json",
        clock=clock,
        transport=httpx.MockTransport(handler),
    )


class TestTrmClient:

    def test_parses_first_row(self, clock):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            return httpx.Response(
                200,
                json=[{"valor": "4100.50", "vigenciadesde": "2024-06-03T00:00:00.000"}],
            )

        snapshot = _client(handler, clock).fetch_latest()

        assert snapshot.rate == Decimal("4100.50")
        assert snapshot.effective_date == date(2024, 6, 3)
        assert snapshot.fetched_at == clock.now()
        assert seen["params"] == {"$order": "vigenciadesde DESC", "$limit": "1"}

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(503, json={"error": "down"}),
            httpx.Response(200, json=[]),
            httpx.Response(200, json={"valor": "4100.50"}),
            httpx.Response(200, json=[{"valor": "4100.50"}]),
            httpx.Response(200, json=[{"valor": "n/a", "vigenciadesde": "2024-06-03"}]),
            httpx.Response(200, json=[{"valor": "-1", "vigenciadesde": "2024-06-03"}]),
            httpx.Response(200, json=[{"valor": "4100.50", "vigenciadesde": "yesterday"}]),
            httpx.Response(200, json=[{"valor": "1e30", "vigenciadesde": "2024-06-03"}]),
            httpx.Response(200, json=[{"valor": "4100.1234567", "vigenciadesde": "2024-06-03"}]),
            httpx.Response(200, text="<html>oops</html>"),
        ],
        ids=[
            "non-2xx", "empty-array", "not-an-array", "missing-date",
            "bad-rate", "negative-rate", "bad-date", "huge-rate", "over-scaled-rate", "not-json",
        ],
    )
    def test_bad_responses_are_fetch_failures(self, clock, response):
        client = _client(lambda request: response, clock)
        with pytest.raises(ExchangeRateFetchError):
            client.fetch_latest()

    def test_timeout_is_fetch_failure(self, clock):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ExchangeRateFetchError) as exc_info:
            _client(handler, clock).fetch_latest()
        assert "ReadTimeout" in exc_info.value.reason

    def test_default_timeout_is_five_seconds(self, clock):
        client = TrmClient(clock=clock)
        assert client.timeout == 5.0
        assert client._client.timeout.read == 5.0
        client.close()

    def test_cache_over_mocked_upstream(self, clock):
        responses = [
            httpx.Response(200, json=[{"valor": "4100.50", "vigenciadesde": "2024-06-03T00:00:00"}]),
            httpx.Response(500),
        ]

        def handler(request):
            return responses.pop(0)

        with _client(handler, clock) as client:
            cache = ExchangeRateCache(fetcher=client.fetch_latest, clock=clock)
            assert cache.get_current_rate().status == RateLookupStatus.FRESH
            clock.advance(61 * MINUTE)
            stale = cache.get_current_rate()

        assert stale.status == RateLookupStatus.STALE
        assert stale.rate == Decimal("4100.50")

    def test_huge_upstream_rate_falls_back_to_stale(self, clock):
        responses = [
            httpx.Response(200, json=[{"valor": "4100.50", "vigenciadesde": "2024-06-03"}]),
            httpx.Response(200, json=[{"valor": "1e30", "vigenciadesde": "2024-06-04"}]),
        ]

        with _client(lambda request: responses.pop(0), clock) as client:
            cache = ExchangeRateCache(fetcher=client.fetch_latest, clock=clock)
            cache.get_current_rate()
            clock.advance(61 * MINUTE)
            lookup = cache.get_current_rate()

        assert lookup.status == RateLookupStatus.STALE
        assert lookup.rate == Decimal("4100.50")
