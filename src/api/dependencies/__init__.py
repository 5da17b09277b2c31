from datetime import timedelta
from typing import Annotated, Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from config import AppSettings
from db.repositories import TariffRepository
from services.cache_providers import CacheProvider
from services.tariff_service import TariffService


def get_session(request: Request) -> Generator[Session, None, None]:
    with request.app.state.sessionmaker() as session:
        yield session


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_cache(request: Request) -> CacheProvider:
    return request.app.state.cache


def get_tariff_service(
    session: Annotated[Session, Depends(get_session)],
    cache: Annotated[CacheProvider, Depends(get_cache)],
    settings: Annotated[AppSettings, Depends(get_settings)],
) -> TariffService:
    return TariffService(
        TariffRepository(session),
        cache,
        cache_ttl=timedelta(seconds=settings.cache_ttl_seconds),
        direct_read_delay_seconds=settings.direct_read_delay_seconds,
    )
