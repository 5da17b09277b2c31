# flake8: noqa E402
# Run via uv to load project deps, e.g.:
# uv run scripts/frankfurter_probe.py --base EUR --target USD
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

# Ensure the src directory is importable when the script is invoked via uv/python directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from clients.frankfurter import FrankfurterClient
from config import config


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fetch latest FX rates from the Frankfurter API.")
    parser.add_argument("--base", default="EUR", help="Base currency code (default: EUR).")
    parser.add_argument("--target", action="append", help="Target currency code; repeat to show several.")
    parser.add_argument("--currencies", action="store_true", help="Only list the supported currency codes.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    settings = config()
    client = FrankfurterClient(base_url=settings.frankfurter_base_url, timeout=settings.http_timeout_seconds)

    if args.currencies:
        print(json.dumps(sorted(client.list_currencies()), indent=2))
        return

    latest = client.get_latest_rates(args.base)
    targets = {code.upper() for code in args.target} if args.target else set(latest.rates)
    payload: dict[str, Any] = {
        "base": latest.base,
        "date": latest.date.isoformat(),
        "rates": {code: str(rate) for code, rate in sorted(latest.rates.items()) if code in targets},
    }
    print(json.dumps(payload, indent=2))


if __name__ == "__main__":
    main()
