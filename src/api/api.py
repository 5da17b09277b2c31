import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from time import perf_counter
from typing import Annotated, AsyncGenerator, Awaitable, Callable

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from api.dependencies import get_tariff_service
from clients.frankfurter import FrankfurterClient
from config import config
from db.db import create_db_engine, init_db
from domain.errors import InvalidArgumentError, StoreFailureError
from domain.tariffs import TariffsResponse
from services.cache_providers import build_cache_provider
from services.sync_scheduler import DailySyncScheduler
from services.tariff_service import TariffService
from services.tariff_sync import TariffSyncService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI) -> AsyncGenerator[None, None]:
    settings = config()
    engine = create_db_engine(settings.database_url)
    fastapi_app.state.settings = settings
    fastapi_app.state.sessionmaker = init_db(engine)
    fastapi_app.state.cache = build_cache_provider(settings)

    sync_service = TariffSyncService(
        fastapi_app.state.sessionmaker,
        FrankfurterClient(base_url=settings.frankfurter_base_url, timeout=settings.http_timeout_seconds),
        fastapi_app.state.cache,
        request_delay_seconds=settings.sync_request_delay_seconds,
    )
    scheduler = DailySyncScheduler(
        sync_service,
        hour=settings.sync_hour,
        minute=settings.sync_minute,
        run_on_startup=settings.sync_on_startup,
    )
    scheduler.start()
    yield
    scheduler.stop()
    engine.dispose()


app = FastAPI(lifespan=lifespan)


@app.middleware("http")
async def log_process_time(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    start_time = perf_counter()
    response = await call_next(request)
    process_time = perf_counter() - start_time
    logger.info("Request time: %s %s: %.4fs", request.method, request.url, process_time)
    return response


@app.exception_handler(InvalidArgumentError)
async def invalid_argument_handler(request: Request, exc: InvalidArgumentError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Invalid argument", "message": str(exc)})


@app.exception_handler(StoreFailureError)
async def store_failure_handler(request: Request, exc: StoreFailureError) -> JSONResponse:
    logger.error("Store failure while serving %s %s: %s", request.method, request.url, exc)
    return JSONResponse(status_code=503, content={"error": "Store unavailable", "message": str(exc)})


@app.get("/health")
def health() -> dict[str, object]:
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc)}


@app.get("/api/v1/tariffs/slow")
def get_tariffs_slow(
    service: Annotated[TariffService, Depends(get_tariff_service)],
    base: str | None = None,
    limit: int = 500,
    offset: int = 0,
) -> TariffsResponse:
    return service.get_tariffs(base, limit, offset)


@app.get("/api/v1/tariffs/fast")
def get_tariffs_fast(
    service: Annotated[TariffService, Depends(get_tariff_service)],
    base: str | None = None,
    limit: int = 500,
    offset: int = 0,
) -> TariffsResponse:
    return service.get_tariffs_cached(base, limit, offset)
