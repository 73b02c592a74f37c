#!/usr/bin/env python3
"""
Print the current TRM (COP per USD) from the configured upstream feed.

Reads settings through rumbo_config, so RUMBO_CONFIG and RUMBO_TRM_URL
apply.  Exit code 0 with the rate on stdout, 1 when no rate is available.

Usage:
    python3 scripts/current_trm.py
    python3 scripts/current_trm.py --json
    RUMBO_TRM_URL=https://example.test/trm.json python3 scripts/current_trm.py
"""

import argparse
import json
import sys
from pathlib import Path

from rumbo_config import get_settings
from rumbo_config.bridges import build_exchange_rate_cache, build_trm_client
from rumbo_kernel.exceptions import ExchangeRateUnavailableError
from rumbo_kernel.logging_config import configure_logging


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--config", type=Path, default=None, help="settings YAML file")
    parser.add_argument("--json", action="store_true", help="print the rate endpoint payload")
    args = parser.parse_args(argv)

    settings = get_settings(args.config)
    configure_logging(level=settings.logging.level)
    with build_trm_client(settings) as client:
        cache = build_exchange_rate_cache(settings, client=client)
        try:
            response = cache.get_current_rate().as_response()
        except ExchangeRateUnavailableError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    if args.json:
        print(json.dumps(response))
    else:
        print(f"{response['rate']} COP/USD (vigente desde {response['date']}, {response['source']})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
