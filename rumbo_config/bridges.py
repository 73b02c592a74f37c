"""
Config -> Kernel bridges.

Functions that turn AppSettings into kernel objects.  They live in
rumbo_config (the producer) because the kernel must NEVER import
rumbo_config.

Usage:
    from rumbo_config import get_settings
    from rumbo_config.bridges import (
        build_exchange_rate_cache,
        build_transfer_orchestrator,
        build_trm_client,
        init_engine_from_settings,
    )

    settings = get_settings()
    init_engine_from_settings(settings)
    rate_cache = build_exchange_rate_cache(settings)   # once per process

    with build_trm_client(settings) as client:          # short-lived callers
        rate = build_exchange_rate_cache(settings, client=client).get_current_rate()
    with session_scope() as session:
        orchestrator = build_transfer_orchestrator(settings, session, rate_cache)
"""

from __future__ import annotations

import httpx
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from rumbo_config.schema import AppSettings
from rumbo_kernel.db.engine import init_engine_from_url
from rumbo_kernel.domain.clock import Clock, SystemClock
from rumbo_kernel.logging_config import configure_logging
from rumbo_kernel.services.exchange_rate_cache import ExchangeRateCache, TrmClient
from rumbo_kernel.services.transfer_orchestrator import TransferOrchestrator


def init_engine_from_settings(settings: AppSettings) -> Engine:
    """Configure logging at the settings level, then build the engine."""
    configure_logging(level=settings.logging.level)
    db = settings.database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )


def build_trm_client(
    settings: AppSettings,
    clock: Clock | None = None,
    transport: httpx.BaseTransport | None = None,
) -> TrmClient:
    return TrmClient(
        url=settings.exchange_rate.url,
        timeout=settings.exchange_rate.timeout_seconds,
        clock=clock,
        transport=transport,
    )


def build_exchange_rate_cache(
    settings: AppSettings,
    clock: Clock | None = None,
    transport: httpx.BaseTransport | None = None,
    client: TrmClient | None = None,
) -> ExchangeRateCache:
    """
    Build the process-wide cache over the configured TRM feed.

    Pass ``client`` to keep ownership of the HTTP connection pool, e.g. a
    ``with build_trm_client(settings) as client:`` block in a short-lived
    script.  Without it a client is created that lives as long as the
    cache.
    """
    clock = clock or SystemClock()
    if client is None:
        client = build_trm_client(settings, clock=clock, transport=transport)
    return ExchangeRateCache(
        fetcher=client.fetch_latest,
        clock=clock,
        ttl_seconds=settings.exchange_rate.ttl_seconds,
        source=settings.exchange_rate.source,
    )


def build_transfer_orchestrator(
    settings: AppSettings,
    session: Session,
    rate_cache: ExchangeRateCache,
    clock: Clock | None = None,
    auto_commit: bool = True,
) -> TransferOrchestrator:
    return TransferOrchestrator(
        session,
        rate_cache,
        clock=clock,
        auto_commit=auto_commit,
        max_attempts=settings.transfer.max_attempts,
    )
