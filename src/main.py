from __future__ import annotations

import argparse
import logging
from time import perf_counter
from typing import Sequence

import uvicorn

from clients.frankfurter import FrankfurterClient
from config import AppSettings, config
from db.db import create_db_engine, init_db
from domain.errors import PartialSyncFailure
from services.cache_providers import build_cache_provider
from services.tariff_sync import SyncStatus, TariffSyncService

logger = logging.getLogger(__name__)


def run_init_db(settings: AppSettings) -> int:
    logger.info("Initializing DB at %s", settings.database_url)
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    engine.dispose()
    return 0


def run_sync(settings: AppSettings, *, strict: bool) -> int:
    engine = create_db_engine(settings.database_url)
    session_factory = init_db(engine)
    sync_service = TariffSyncService(
        session_factory,
        FrankfurterClient(base_url=settings.frankfurter_base_url, timeout=settings.http_timeout_seconds),
        build_cache_provider(settings),
        request_delay_seconds=settings.sync_request_delay_seconds,
    )

    started = perf_counter()
    result = sync_service.run()
    engine.dispose()
    logger.info("Sync finished with status %s in %.2fs", result.status, perf_counter() - started)

    print("Sync summary:")
    print(f"  Status:            {result.status}")
    print(f"  Effective date:    {result.effective_date}")
    print(f"  Currencies:        {result.currencies}")
    print(f"  Deactivated rows:  {result.deactivated}")
    print(f"  Inserted rows:     {result.inserted}")
    print(f"  Duplicates:        {result.duplicates}")
    print(f"  Failed currencies: {', '.join(result.failed_currencies) or '-'}")

    if result.status not in (SyncStatus.COMPLETED, SyncStatus.SKIPPED):
        return 1
    if strict:
        try:
            result.raise_for_partial_failure()
        except PartialSyncFailure as exc:
            logger.error("%s", exc)
            return 2
    return 0


def run_serve(host: str, port: int) -> int:
    uvicorn.run("api.api:app", host=host, port=port)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Exchange-rate tariffs service.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create the tariffs table and indexes.")

    sync_parser = subparsers.add_parser("sync", help="Run one tariff synchronization now.")
    sync_parser.add_argument(
        "--strict", action="store_true", help="Exit non-zero when any currency could not be fetched."
    )

    serve_parser = subparsers.add_parser("serve", help="Serve the HTTP API with the daily sync scheduler.")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    settings = config()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    if args.command == "init-db":
        return run_init_db(settings)
    if args.command == "sync":
        return run_sync(settings, strict=args.strict)
    return run_serve(args.host, args.port)


if __name__ == "__main__":
    raise SystemExit(main())
