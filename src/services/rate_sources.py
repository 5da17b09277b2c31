from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Protocol


@dataclass(frozen=True)
class LatestRates:
    base: str
    date: date
    rates: dict[str, Decimal]


class RateSource(Protocol):
    def list_currencies(self) -> set[str]: ...

    def get_latest_rates(self, base: str | None = None) -> LatestRates: ...


__all__ = ["LatestRates", "RateSource"]
