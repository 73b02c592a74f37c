"""
rumbo_config -- single public entrypoint for runtime settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_settings()``.  No other component reads configuration files or
    environment variables directly.

Architecture position:
    Configuration.  Sits above ``rumbo_kernel``; the kernel MUST NEVER
    import from ``rumbo_config``.  ``rumbo_config.bridges`` turns settings
    into kernel objects (engine, exchange rate cache, orchestrator).

Resolution order:
    1. ``config_path`` argument, else the file named by ``RUMBO_CONFIG``,
       else the packaged ``defaults.yaml``.
    2. ``RUMBO_DATABASE_URL``, ``RUMBO_TRM_URL`` and ``RUMBO_LOG_LEVEL``
       override single values of that file.

Failure modes:
    - ``FileNotFoundError`` -- the selected file does not exist.
    - ``KeyError`` -- a required key is missing.
    - ``ValueError`` -- a value is out of range or mistyped.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from rumbo_config.loader import load_yaml_file, parse_settings
from rumbo_config.schema import (
    AppSettings,
    DatabaseSettings,
    ExchangeRateSettings,
    LoggingSettings,
    TransferSettings,
)

_logger = logging.getLogger("rumbo_kernel.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

# env var -> (section, key)
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "RUMBO_DATABASE_URL": ("database", "url"),
    "RUMBO_TRM_URL": ("exchange_rate", "url"),
    "RUMBO_LOG_LEVEL": ("logging", "level"),
}


def _apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str]) -> list[str]:
    applied = []
    for var, (section, key) in _ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            data[section] = {**(data.get(section) or {}), key: value}
            applied.append(var)
    return applied


def get_settings(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppSettings:
    """The ONLY public settings entrypoint.

    Args:
        config_path: YAML file to read instead of ``RUMBO_CONFIG`` or the
            packaged defaults.
        environ: Environment to read overrides from (``os.environ`` when
            None).  Tests pass a plain dict.
    """
    env = os.environ if environ is None else environ

    if config_path is not None:
        path = Path(config_path)
    elif env.get("RUMBO_CONFIG"):
        path = Path(env["RUMBO_CONFIG"])
    else:
        path = DEFAULTS_PATH

    data = load_yaml_file(path)
    applied = _apply_env_overrides(data, env)
    settings = parse_settings(data)

    _logger.debug(
        "settings_loaded",
        extra={"config_path": str(path), "env_overrides": applied},
    )
    return settings


__all__ = [
    "AppSettings",
    "DEFAULTS_PATH",
    "DatabaseSettings",
    "ExchangeRateSettings",
    "LoggingSettings",
    "TransferSettings",
    "get_settings",
]
