from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, Index, Integer, String, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from domain.tariffs import CURRENCY_CODE_MAX_LENGTH


class DecimalAsString(TypeDecorator):
    impl = String
    cache_ok = True

    def process_bind_param(self, value: Decimal | None, dialect: object) -> str | None:
        if value is None:
            return None
        return str(value)

    def process_result_value(self, value: str | None, dialect: object) -> Decimal | None:
        if value is None:
            return None
        return Decimal(value)


class Base(DeclarativeBase):
    pass


class TariffOrm(Base):
    __tablename__ = "tariffs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    base_currency: Mapped[str] = mapped_column(String(CURRENCY_CODE_MAX_LENGTH), nullable=False)
    target_currency: Mapped[str] = mapped_column(String(CURRENCY_CODE_MAX_LENGTH), nullable=False)
    rate: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_tariffs_base_currency", "base_currency"),
        Index("ix_tariffs_is_active", "is_active"),
        Index("ix_tariffs_base_currency_is_active", "base_currency", "is_active"),
        Index("ix_tariffs_effective_date_is_active", "effective_date", "is_active"),
        # At most one active row per pair and date.
        Index(
            "uq_tariffs_active_pair",
            "effective_date",
            "base_currency",
            "target_currency",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )
