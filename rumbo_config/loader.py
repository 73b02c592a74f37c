"""
Settings loader (``rumbo_config.loader``).

Responsibility
--------------
Reads a YAML settings file and parses it into the frozen dataclasses of
``rumbo_config.schema``.  Callers go through ``rumbo_config.get_settings()``
rather than calling this module directly.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys (``database.url``, ``exchange_rate.url``)
  -> ``KeyError`` propagates.
* Out-of-range or mistyped values  -> ``ValueError``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from rumbo_config.schema import (
    AppSettings,
    DatabaseSettings,
    ExchangeRateSettings,
    LoggingSettings,
    TransferSettings,
)

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def _positive_int(section: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"{section}.{key} must be a positive integer, got {value!r}")
    return value


def _positive_number(section: str, key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ValueError(f"{section}.{key} must be a positive number, got {value!r}")
    return float(value)


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    return DatabaseSettings(
        url=str(data["url"]),
        echo=bool(data.get("echo", False)),
        pool_size=_positive_int("database", "pool_size", data.get("pool_size", 20)),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout=_positive_int("database", "pool_timeout", data.get("pool_timeout", 30)),
        pool_recycle=_positive_int("database", "pool_recycle", data.get("pool_recycle", 1800)),
    )


def parse_exchange_rate(data: dict[str, Any]) -> ExchangeRateSettings:
    return ExchangeRateSettings(
        url=str(data["url"]),
        source=str(data.get("source", "datos.gov.co")),
        ttl_seconds=_positive_int("exchange_rate", "ttl_seconds", data.get("ttl_seconds", 3600)),
        timeout_seconds=_positive_number(
            "exchange_rate", "timeout_seconds", data.get("timeout_seconds", 5.0)
        ),
    )


def parse_transfer(data: dict[str, Any]) -> TransferSettings:
    return TransferSettings(
        max_attempts=_positive_int("transfer", "max_attempts", data.get("max_attempts", 3)),
    )


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    level = str(data.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {sorted(_LOG_LEVELS)}, got {level!r}")
    return LoggingSettings(level=level)


def parse_settings(data: dict[str, Any]) -> AppSettings:
    """
    Parse the full settings mapping.

    ``database`` and ``exchange_rate`` sections are required; ``transfer``
    and ``logging`` fall back to their defaults when absent.
    """
    return AppSettings(
        database=parse_database(data["database"]),
        exchange_rate=parse_exchange_rate(data["exchange_rate"]),
        transfer=parse_transfer(data.get("transfer") or {}),
        logging=parse_logging(data.get("logging") or {}),
    )

