from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

import requests
from requests import Response
from requests.adapters import HTTPAdapter
from urllib3.util import Retry

from domain.errors import FrankfurterAPIError
from domain.tariffs import normalize_currency
from services.rate_sources import LatestRates, RateSource


# API docs: https://frankfurter.dev
class FrankfurterClient(RateSource):
    def __init__(
        self,
        base_url: str = "https://api.frankfurter.app",
        timeout: float = 10.0,
        session: requests.Session | None = None,
        retry_attempts: int = 3,
        retry_backoff_seconds: float = 1,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

        retries = Retry(
            total=retry_attempts,
            backoff_factor=retry_backoff_seconds,
            status_forcelist=[429],
            allowed_methods=frozenset({"GET"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retries)
        self._session.mount("https://", adapter)
        self._session.mount("http://", adapter)

    def list_currencies(self) -> set[str]:
        payload = self._request("GET", "/v1/currencies")
        return {normalize_currency(str(code)) for code in payload}

    def get_latest_rates(self, base: str | None = None) -> LatestRates:
        params = {"base": normalize_currency(base)} if base else None
        payload = self._request("GET", "/v1/latest", params=params)

        base_raw = payload.get("base")
        date_raw = payload.get("date")
        rates_raw = payload.get("rates")
        if base_raw is None or date_raw is None or not isinstance(rates_raw, dict):
            raise FrankfurterAPIError("Frankfurter payload missing required fields", payload=payload)

        try:
            rates_date = date.fromisoformat(str(date_raw))
            parsed_rates = {normalize_currency(str(code)): self._to_decimal(rate) for code, rate in rates_raw.items()}
        except (ValueError, InvalidOperation) as exc:
            raise FrankfurterAPIError("Frankfurter returned malformed rates", payload=payload) from exc

        return LatestRates(base=normalize_currency(str(base_raw)), date=rates_date, rates=parsed_rates)

    def _request(self, method: str, path: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(method, url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as exc:
            resp = exc.response
            status_code = getattr(resp, "status_code", None)
            message, payload = self._extract_error(resp)
            raise FrankfurterAPIError(message, status_code=status_code, payload=payload) from exc
        except requests.RequestException as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            raise FrankfurterAPIError("Frankfurter request failed", status_code=status_code) from exc

        try:
            payload_raw = response.json()
        except ValueError as exc:
            raise FrankfurterAPIError("Frankfurter returned invalid JSON", payload=response.text) from exc

        if not isinstance(payload_raw, dict):
            raise FrankfurterAPIError("Frankfurter returned unexpected payload type", payload=payload_raw)

        return payload_raw

    @staticmethod
    def _to_decimal(value: Any) -> Decimal:
        # str() first so floats decoded from JSON keep their printed digits.
        return Decimal(str(value))

    @staticmethod
    def _extract_error(response: Response | None) -> tuple[str, Any | None]:
        message = "Frankfurter request failed"
        payload: Any | None = None
        if response is None:
            return message, payload

        try:
            payload = response.json()
            if isinstance(payload, dict):
                message = payload.get("message") or payload.get("error") or message
        except ValueError:
            payload = response.text
        return message, payload


__all__ = ["FrankfurterClient"]
