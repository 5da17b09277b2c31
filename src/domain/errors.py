from __future__ import annotations

from typing import Any


class TariffsError(Exception):
    pass


class InvalidArgumentError(TariffsError, ValueError):
    """Caller supplied a query the service refuses to answer."""


class UpstreamUnavailableError(TariffsError):
    """An external collaborator (rate source, cache backend) could not be reached."""


class FrankfurterAPIError(UpstreamUnavailableError):
    def __init__(self, message: str, *, status_code: int | None = None, payload: Any | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class StoreFailureError(TariffsError):
    """The durable store failed to read or write."""


class PartialSyncFailure(TariffsError):
    def __init__(self, failed_currencies: list[str]) -> None:
        joined = ", ".join(failed_currencies)
        super().__init__(f"Rates could not be fetched for {len(failed_currencies)} currencies: {joined}")
        self.failed_currencies = failed_currencies


__all__ = [
    "FrankfurterAPIError",
    "InvalidArgumentError",
    "PartialSyncFailure",
    "StoreFailureError",
    "TariffsError",
    "UpstreamUnavailableError",
]
