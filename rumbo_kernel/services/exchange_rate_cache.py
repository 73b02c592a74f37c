"""
ExchangeRateCache -- the current TRM with bounded staleness.

Responsibility:
    Serves the COP-per-USD market rate (TRM) from a single upstream feed,
    re-fetching at most once per freshness window and falling back to the
    last good value when the feed is down.

Architecture position:
    Kernel > Services.  One instance is shared by every request in the
    process; it is built once (see ``rumbo_config.bridges``) and injected
    into the TransferOrchestrator.  The upstream is injected too, so tests
    substitute a fake feed and a DeterministicClock.

State machine:
    EMPTY  --fetch ok-->    FRESH
    FRESH  --ttl elapsed--> STALE     (detected lazily on the next read)
    STALE  --fetch ok-->    FRESH
    STALE  --fetch fails--> STALE     (the old value is served)
    EMPTY  --fetch fails--> EMPTY     (the read reports UNAVAILABLE)

Invariants enforced:
    - A FRESH read never contacts upstream.
    - The held snapshot is only ever replaced by a newer successful fetch.
    - Read-check-fetch-store runs under one mutex, so concurrent readers of
      a stale cache trigger a single upstream call and the rest observe its
      result.
    - Every upstream call is bounded by the client timeout (5s default).

Failure modes:
    - ExchangeRateFetchError is raised by TrmClient and consumed here; it
      never reaches callers of the cache.
    - ExchangeRateUnavailableError from ``require_current_rate()`` when the
      cache is empty and upstream failed.
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

import httpx

from rumbo_kernel.domain.clock import Clock, SystemClock
from rumbo_kernel.domain.currency import parse_exchange_rate
from rumbo_kernel.domain.values import ExchangeRateSnapshot
from rumbo_kernel.exceptions import (
    ExchangeRateFetchError,
    ExchangeRateUnavailableError,
    InvalidExchangeRateError,
)
from rumbo_kernel.logging_config import get_logger

logger = get_logger("services.exchange_rate")

TRM_URL = "https://www.datos.gov.co/resource/ceyp-9c7c.json"
TRM_SOURCE = "datos.gov.co"
DEFAULT_TTL_SECONDS = 3600
DEFAULT_TIMEOUT_SECONDS = 5.0


class TrmClient:
    """
    HTTP client for the datos.gov.co TRM dataset.

    The dataset is queried newest first with a limit of one row; the row's
    ``valor`` is the rate and the date part of ``vigenciadesde`` is the
    effective date.
    """

    def __init__(
        self,
        url: str = TRM_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Clock | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self._clock = clock or SystemClock()
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "TrmClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def fetch_latest(self) -> ExchangeRateSnapshot:
        """
        Fetch the most recent TRM.

        Raises:
            ExchangeRateFetchError: On transport errors and timeouts, a
                non-2xx status, or an empty or malformed payload.
        """
        try:
            response = self._client.get(
                self.url,
                params={"$order": "vigenciadesde DESC", "$limit": 1},
            )
        except httpx.HTTPError as exc:
            raise ExchangeRateFetchError(f"{type(exc).__name__}: {exc}") from exc

        if not response.is_success:
            raise ExchangeRateFetchError(f"upstream returned {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise ExchangeRateFetchError("response is not JSON") from exc

        if not isinstance(payload, list) or not payload:
            raise ExchangeRateFetchError("empty response")

        row = payload[0]
        if not isinstance(row, dict) or "valor" not in row or "vigenciadesde" not in row:
            raise ExchangeRateFetchError("missing valor/vigenciadesde")

        try:
            rate = parse_exchange_rate(str(row["valor"]))
            effective_date = date.fromisoformat(str(row["vigenciadesde"])[:10])
        except (InvalidExchangeRateError, InvalidOperation, ValueError) as exc:
            raise ExchangeRateFetchError(f"malformed row: {exc}") from exc

        return ExchangeRateSnapshot(
            rate=rate,
            effective_date=effective_date,
            fetched_at=self._clock.now(),
        )


class CacheState(str, Enum):
    """Where the cache sits in its state machine."""

    EMPTY = "empty"
    FRESH = "fresh"
    STALE = "stale"


class RateLookupStatus(str, Enum):
    """Outcome of ``ExchangeRateCache.get_current_rate``."""

    FRESH = "fresh"
    STALE = "stale"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class RateLookup:
    """
    Result of a rate read.

    ``snapshot`` is set for FRESH and STALE, None for UNAVAILABLE.
    """

    status: RateLookupStatus
    snapshot: ExchangeRateSnapshot | None
    source: str = TRM_SOURCE

    @property
    def is_available(self) -> bool:
        return self.snapshot is not None

    @property
    def rate(self) -> Decimal | None:
        return self.snapshot.rate if self.snapshot else None

    def require(self) -> ExchangeRateSnapshot:
        """The snapshot, or ExchangeRateUnavailableError."""
        if self.snapshot is None:
            raise ExchangeRateUnavailableError(self.source)
        return self.snapshot

    def as_response(self) -> dict[str, str]:
        """
        Render the payload served by the rate endpoint.

        Raises:
            ExchangeRateUnavailableError: When no rate is available.
        """
        snapshot = self.require()
        return {
            "rate": str(snapshot.rate),
            "date": snapshot.effective_date.isoformat(),
            "source": self.source,
        }


class ExchangeRateCache:
    """
    Process-wide TRM cache with stale fallback.

    Args:
        fetcher: Zero-argument callable returning a fresh
            ExchangeRateSnapshot or raising ExchangeRateFetchError,
            normally ``TrmClient.fetch_latest``.
        clock: Time source used to measure freshness.
        ttl_seconds: Freshness window.
        source: Name reported in lookups and errors.
    """

    def __init__(
        self,
        fetcher: Callable[[], ExchangeRateSnapshot],
        clock: Clock | None = None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        source: str = TRM_SOURCE,
    ):
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self._fetcher = fetcher
        self._clock = clock or SystemClock()
        self._ttl = timedelta(seconds=ttl_seconds)
        self.source = source
        self._snapshot: ExchangeRateSnapshot | None = None
        self._lock = threading.Lock()

    @property
    def snapshot(self) -> ExchangeRateSnapshot | None:
        """The held snapshot, whatever its age.  Never fetches."""
        return self._snapshot

    @property
    def state(self) -> CacheState:
        with self._lock:
            return self._state_at_now()

    def _state_at_now(self) -> CacheState:
        if self._snapshot is None:
            return CacheState.EMPTY
        if self._clock.elapsed_since(self._snapshot.fetched_at) < self._ttl:
            return CacheState.FRESH
        return CacheState.STALE

    def get_current_rate(self) -> RateLookup:
        """
        Read the current rate, refreshing it when it is not fresh.

        Returns:
            FRESH with the cached or newly fetched snapshot, STALE with the
            previous snapshot when a refresh failed, or UNAVAILABLE when
            nothing was ever fetched and the refresh failed.
        """
        with self._lock:
            state = self._state_at_now()
            if state is CacheState.FRESH:
                return RateLookup(RateLookupStatus.FRESH, self._snapshot, self.source)

            try:
                fetched = self._fetcher()
            except ExchangeRateFetchError as exc:
                logger.warning(
                    "exchange_rate_fetch_failed",
                    extra={
                        "source": self.source,
                        "reason": exc.reason,
                        "previous_state": state.value,
                    },
                )
                if self._snapshot is None:
                    logger.error(
                        "exchange_rate_unavailable", extra={"source": self.source}
                    )
                    return RateLookup(RateLookupStatus.UNAVAILABLE, None, self.source)

                logger.warning(
                    "exchange_rate_served_stale",
                    extra={
                        "source": self.source,
                        "rate": str(self._snapshot.rate),
                        "fetched_at": self._snapshot.fetched_at.isoformat(),
                    },
                )
                return RateLookup(RateLookupStatus.STALE, self._snapshot, self.source)

            self._snapshot = replace(fetched, fetched_at=self._clock.now())
            logger.info(
                "exchange_rate_refreshed",
                extra={
                    "source": self.source,
                    "rate": str(self._snapshot.rate),
                    "effective_date": self._snapshot.effective_date.isoformat(),
                    "previous_state": state.value,
                },
            )
            return RateLookup(RateLookupStatus.FRESH, self._snapshot, self.source)

    def require_current_rate(self) -> ExchangeRateSnapshot:
        """
        Like ``get_current_rate`` but raising when no rate is available.

        Raises:
            ExchangeRateUnavailableError: Cache empty and upstream failed.
        """
        return self.get_current_rate().require()
