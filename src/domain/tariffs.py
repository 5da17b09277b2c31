from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

CURRENCY_CODE_MAX_LENGTH = 10


def normalize_currency(code: str) -> str:
    return code.strip().upper()


class Tariff(BaseModel):
    """Exchange rate from one currency (base) to another (target).

    ``rate=Decimal("1.1571")`` with base EUR and target USD means 1 EUR = 1.1571 USD.
    Superseded records stay in the store with ``is_active=False``.
    """

    id: int | None = None
    base_currency: str = Field(min_length=1, max_length=CURRENCY_CODE_MAX_LENGTH)
    target_currency: str = Field(min_length=1, max_length=CURRENCY_CODE_MAX_LENGTH)
    rate: Decimal
    effective_date: date
    is_active: bool = True
    created_at: datetime
    updated_at: datetime | None = None

    @field_validator("base_currency", "target_currency", mode="before")
    @classmethod
    def _normalize_codes(cls, value: object) -> object:
        if isinstance(value, str):
            return normalize_currency(value)
        return value

    @model_validator(mode="after")
    def _validate_rate(self) -> Tariff:
        if self.rate <= 0:
            raise ValueError("Tariff.rate must be > 0")
        return self

    @property
    def pair_key(self) -> tuple[str, str, date]:
        return self.base_currency, self.target_currency, self.effective_date


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TariffView(_CamelModel):
    id: int
    base_currency: str
    target_currency: str
    rate: Decimal
    effective_date: date

    @classmethod
    def from_tariff(cls, tariff: Tariff) -> TariffView:
        if tariff.id is None:
            raise ValueError("Only persisted tariffs can be exposed")
        return cls(
            id=tariff.id,
            base_currency=tariff.base_currency,
            target_currency=tariff.target_currency,
            rate=tariff.rate,
            effective_date=tariff.effective_date,
        )


class TariffsResponse(_CamelModel):
    data: list[TariffView]
    total: int
    timestamp: datetime
    from_cache: bool | None = None
    cached_at: datetime | None = None


__all__ = ["CURRENCY_CODE_MAX_LENGTH", "Tariff", "TariffView", "TariffsResponse", "normalize_currency"]
