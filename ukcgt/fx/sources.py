"""HTTP transports for the published FX rate feeds.

All rates are expressed as units of foreign currency per 1 GBP.
"""

import csv
import io
import logging
from datetime import date
from decimal import Decimal, InvalidOperation

import httpx

from ukcgt.exceptions import RateFetchError

logger = logging.getLogger(__name__)

HMRC_MONTHLY_URL = "https://hmrc.matchilling.com/rate/{year:04d}/{month:02d}.json"
HMRC_AVERAGE_URL = (
    "https://www.trade-tariff.service.gov.uk/exchange_rates/view/files/"
    "average_csv_{year}-{month}.csv"
)
FRANKFURTER_URL = "https://api.frankfurter.dev/v1/{start}..{end}"

HTTP_TIMEOUT_SECONDS = 15.0

# Pre-2023 average rate files carry a country name instead of a currency code.
COUNTRY_CURRENCY_CODES: dict[str, str] = {
    "usa": "USD",
    "euro zone": "EUR",
    "eurozone": "EUR",
    "japan": "JPY",
    "switzerland": "CHF",
    "china": "CNY",
    "india": "INR",
    "brazil": "BRL",
    "mexico": "MXN",
    "south korea": "KRW",
    "korea": "KRW",
    "south africa": "ZAR",
    "sweden": "SEK",
    "norway": "NOK",
    "denmark": "DKK",
    "abu dhabi": "AED",
    "uae": "AED",
    "malaysia": "MYR",
    "thailand": "THB",
    "turkey": "TRY",
    "poland": "PLN",
    "hungary": "HUF",
    "czech republic": "CZK",
    "czechia": "CZK",
    "israel": "ILS",
    "kuwait": "KWD",
    "saudi arabia": "SAR",
    "vietnam": "VND",
    "indonesia": "IDR",
    "taiwan": "TWD",
    "singapore": "SGD",
    "hong kong": "HKD",
    "canada": "CAD",
    "australia": "AUD",
    "new zealand": "NZD",
    "russia": "RUB",
    "philippines": "PHP",
    "pakistan": "PKR",
    "egypt": "EGP",
    "nigeria": "NGN",
    "colombia": "COP",
    "chile": "CLP",
    "argentina": "ARS",
    "peru": "PEN",
}


def parse_rate(value: object) -> Decimal | None:
    """Parse a positive rate. Returns None for anything malformed."""
    if value is None:
        return None
    try:
        rate = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not rate.is_finite() or rate <= 0:
        return None
    return rate


class HTTPRateSource:
    """Base for rate feeds. Pass ``client`` to reuse a connection pool or mock transport."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        self.client = client
        self.timeout = timeout

    async def _get(self, url: str, params: dict | None = None) -> httpx.Response:
        try:
            if self.client is not None:
                return await self.client.get(url, params=params)
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise RateFetchError(url, str(exc) or type(exc).__name__) from exc

    @staticmethod
    def _raise_for_status(url: str, response: httpx.Response) -> None:
        if response.status_code >= 400:
            raise RateFetchError(url, f"HTTP {response.status_code}")


class HMRCMonthlySource(HTTPRateSource):
    """HMRC monthly exchange rates, mirrored as JSON by hmrc.matchilling.com."""

    async def fetch_month(self, year: int, month: int) -> dict[str, Decimal]:
        """Return every rate published for the month. Empty when not yet published."""
        url = HMRC_MONTHLY_URL.format(year=year, month=month)
        response = await self._get(url)
        if response.status_code == 404:
            return {}
        self._raise_for_status(url, response)
        try:
            payload = response.json()
        except ValueError as exc:
            raise RateFetchError(url, "invalid JSON") from exc

        rates: dict[str, Decimal] = {}
        for currency, raw in (payload.get("rates") or {}).items():
            rate = parse_rate(raw)
            if rate is None:
                logger.debug("Skipping malformed HMRC rate %s=%r", currency, raw)
                continue
            rates[currency.upper()] = rate
        return rates


class HMRCYearlySource(HTTPRateSource):
    """HMRC average rate CSV files (published 31 March and 31 December)."""

    async def fetch_average(self, year: int, month: int) -> dict[str, Decimal] | None:
        """Return the averages file for ``year``/``month``, or None if not published."""
        url = HMRC_AVERAGE_URL.format(year=year, month=month)
        response = await self._get(url)
        if response.status_code == 404:
            return None
        self._raise_for_status(url, response)
        rates = parse_average_csv(response.text)
        return rates or None


def parse_average_csv(text: str) -> dict[str, Decimal]:
    """Parse an HMRC average rates CSV in either published layout.

    2023 onwards: Country, Currency, Currency Code, Sterling value, Units per £1.
    Earlier: Country, Currency, Sterling value, Units per pound (no code column).
    """
    rows = list(csv.reader(io.StringIO(text.lstrip("\ufeff"))))
    if not rows:
        return {}
    header = ",".join(rows[0]).lower()
    has_code_column = "currency code" in header

    rates: dict[str, Decimal] = {}
    for row in rows[1:]:
        cells = [cell.strip() for cell in row]
        if has_code_column:
            if len(cells) < 5:
                continue
            code, raw = cells[2].upper(), cells[4]
        else:
            if len(cells) < 4:
                continue
            code, raw = COUNTRY_CURRENCY_CODES.get(cells[0].lower(), ""), cells[3]
        rate = parse_rate(raw)
        if code and rate is not None:
            rates[code] = rate
    return rates


class FrankfurterSource(HTTPRateSource):
    """ECB reference rates via the Frankfurter API, based in GBP."""

    async def fetch_series(
        self, start: date, end: date, currencies: list[str]
    ) -> dict[date, dict[str, Decimal]]:
        """Return ``{date: {currency: rate}}`` for the ECB business days in [start, end]."""
        url = FRANKFURTER_URL.format(start=start.isoformat(), end=end.isoformat())
        params = {"from": "GBP", "to": ",".join(sorted(set(currencies)))}
        response = await self._get(url, params=params)
        if response.status_code == 404:
            return {}
        self._raise_for_status(url, response)
        try:
            payload = response.json()
        except ValueError as exc:
            raise RateFetchError(url, "invalid JSON") from exc

        series: dict[date, dict[str, Decimal]] = {}
        for day, day_rates in (payload.get("rates") or {}).items():
            try:
                rate_date = date.fromisoformat(day)
            except ValueError:
                continue
            parsed = {
                currency.upper(): rate
                for currency, raw in (day_rates or {}).items()
                if (rate := parse_rate(raw)) is not None
            }
            if parsed:
                series[rate_date] = parsed
        return series
