from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db import models
from domain.errors import StoreFailureError
from domain.tariffs import Tariff


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise StoreFailureError(f"Tariff store failed to {operation}") from exc


class TariffRepository:
    """Durable store of versioned tariff rows.

    Reads only ever return active rows. Writes are flushed, never committed:
    the session owner decides where the transaction ends.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def list_active(self, limit: int, offset: int) -> list[Tariff]:
        stmt = (
            select(models.TariffOrm)
            .where(models.TariffOrm.is_active.is_(True))
            .order_by(models.TariffOrm.base_currency, models.TariffOrm.target_currency, models.TariffOrm.id)
            .offset(offset)
            .limit(limit)
        )
        with _store_errors("list active tariffs"):
            rows = self._session.execute(stmt).scalars().all()
        return [self._to_domain(row) for row in rows]

    def list_active_by_base(self, base_currency: str) -> list[Tariff]:
        stmt = (
            select(models.TariffOrm)
            .where(models.TariffOrm.is_active.is_(True), models.TariffOrm.base_currency == base_currency)
            .order_by(models.TariffOrm.target_currency, models.TariffOrm.id)
        )
        with _store_errors("list tariffs by base currency"):
            rows = self._session.execute(stmt).scalars().all()
        return [self._to_domain(row) for row in rows]

    def count_active(self) -> int:
        stmt = select(func.count()).select_from(models.TariffOrm).where(models.TariffOrm.is_active.is_(True))
        with _store_errors("count active tariffs"):
            return int(self._session.scalar(stmt) or 0)

    def has_active_for_date(self, effective_date: date) -> bool:
        stmt = (
            select(models.TariffOrm.id)
            .where(models.TariffOrm.is_active.is_(True), models.TariffOrm.effective_date == effective_date)
            .limit(1)
        )
        with _store_errors("check active tariffs"):
            return self._session.scalar(stmt) is not None

    def get(self, tariff_id: int) -> Tariff | None:
        with _store_errors("load tariff"):
            orm_tariff = self._session.get(models.TariffOrm, tariff_id)
        if orm_tariff is None:
            return None
        return self._to_domain(orm_tariff)

    def create_many(self, tariffs: list[Tariff]) -> list[Tariff]:
        orm_tariffs = [
            models.TariffOrm(
                base_currency=tariff.base_currency,
                target_currency=tariff.target_currency,
                rate=tariff.rate,
                effective_date=tariff.effective_date,
                is_active=tariff.is_active,
                created_at=tariff.created_at,
                updated_at=tariff.updated_at,
            )
            for tariff in tariffs
        ]
        with _store_errors("insert tariffs"):
            self._session.add_all(orm_tariffs)
            self._session.flush()
        return [self._to_domain(orm_tariff) for orm_tariff in orm_tariffs]

    def deactivate_active(self, updated_at: datetime) -> int:
        stmt = (
            update(models.TariffOrm)
            .where(models.TariffOrm.is_active.is_(True))
            .values(is_active=False, updated_at=updated_at)
            .execution_options(synchronize_session=False)
        )
        with _store_errors("deactivate tariffs"):
            result = self._session.execute(stmt)
            self._session.flush()
        return int(getattr(result, "rowcount", 0) or 0)

    @staticmethod
    def _to_domain(orm_tariff: models.TariffOrm) -> Tariff:
        created_at = orm_tariff.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        updated_at = orm_tariff.updated_at
        if updated_at is not None and updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)

        return Tariff(
            id=orm_tariff.id,
            base_currency=orm_tariff.base_currency,
            target_currency=orm_tariff.target_currency,
            rate=orm_tariff.rate,
            effective_date=orm_tariff.effective_date,
            is_active=orm_tariff.is_active,
            created_at=created_at,
            updated_at=updated_at,
        )
