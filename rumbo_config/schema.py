"""
Settings schema.

Frozen dataclasses produced by ``rumbo_config.loader`` from the YAML
defaults plus environment overrides.  Nothing here reads files or the
environment.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection parameters handed to ``init_engine_from_url``."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass(frozen=True)
class ExchangeRateSettings:
    """Upstream TRM feed and cache freshness."""

    url: str
    source: str = "datos.gov.co"
    ttl_seconds: int = 3600
    timeout_seconds: float = 5.0


@dataclass(frozen=True)
class TransferSettings:
    # Optimistic-conflict replays per transfer
    max_attempts: int = 3


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class AppSettings:
    """Everything the process needs to wire up the kernel."""

    database: DatabaseSettings
    exchange_rate: ExchangeRateSettings
    transfer: TransferSettings
    logging: LoggingSettings
