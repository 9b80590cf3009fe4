"""Stock split data feeds.

The default feed is the coffee-cpu/stock-splits-data repository served by
jsDelivr: one JSON file per calendar year, each record carrying a "new:old"
ratio such as "5:1".
"""

import asyncio
import json
import logging
from collections.abc import Callable, Sequence
from datetime import date, datetime, timedelta
from typing import Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field

from ukcgt.db.repository import SplitDataRepository
from ukcgt.engines.splits import parse_split_ratio
from ukcgt.exceptions import InvalidSplitRatioError, SplitLookupError
from ukcgt.fx.sources import HTTP_TIMEOUT_SECONDS
from ukcgt.models.cgt import SplitRatio

logger = logging.getLogger(__name__)

JSDELIVR_SPLITS_URL = (
    "https://cdn.jsdelivr.net/gh/coffee-cpu/stock-splits-data@main/data/{year}.json"
)
SPLIT_CACHE_TTL = timedelta(days=7)


class SplitRecord(BaseModel):
    """One published stock split."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    symbol: str
    split_date: date = Field(alias="date")
    ratio: SplitRatio
    name: str | None = None
    exchange: str | None = None
    notes: str | None = None


class SplitDataSource(Protocol):
    async def fetch_splits_for_years(self, years: Sequence[int]) -> list[SplitRecord]: ...


def parse_split_year(text: str) -> list[SplitRecord]:
    """Parse a year file. Records with a missing field, bad date or bad ratio are skipped."""
    try:
        payload = json.loads(text)
    except ValueError:
        logger.warning("Ignoring split data file that is not valid JSON")
        return []
    raw_splits = payload.get("splits") if isinstance(payload, dict) else None
    if not isinstance(raw_splits, list):
        return []

    records: list[SplitRecord] = []
    for raw in raw_splits:
        if not isinstance(raw, dict):
            continue
        symbol, raw_date, raw_ratio = raw.get("symbol"), raw.get("date"), raw.get("ratio")
        if not symbol or not raw_date or not raw_ratio:
            continue
        try:
            split_date = date.fromisoformat(raw_date)
            ratio = parse_split_ratio(raw_ratio)
        except (ValueError, InvalidSplitRatioError):
            logger.debug("Skipping malformed split record %r", raw)
            continue
        records.append(
            SplitRecord(
                symbol=symbol.strip().upper(),
                split_date=split_date,
                ratio=ratio,
                name=raw.get("name"),
                exchange=raw.get("exchange"),
                notes=raw.get("notes"),
            )
        )
    return records


class JsDelivrSplitSource:
    """Split year files from jsDelivr, cached in the ``split_data`` table.

    A cached file younger than seven days is used without a request. When the
    feed cannot be reached, a stale cached file is used instead; with nothing
    cached the fetch raises ``SplitLookupError``. A missing year file (404)
    means no splits were recorded for that year.
    """

    def __init__(
        self,
        cache: SplitDataRepository | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.cache = cache
        self.client = client
        self.timeout = timeout
        self.now = now

    async def fetch_splits_for_years(self, years: Sequence[int]) -> list[SplitRecord]:
        results = await asyncio.gather(*(self._fetch_year(year) for year in years))
        return [record for records in results for record in records]

    async def _fetch_year(self, year: int) -> list[SplitRecord]:
        cached = self.cache.get(year) if self.cache is not None else None
        if cached is not None and self.now() - cached[1] <= SPLIT_CACHE_TTL:
            return parse_split_year(cached[0])

        url = JSDELIVR_SPLITS_URL.format(year=year)
        try:
            text = await self._download(url)
        except SplitLookupError as exc:
            if cached is None:
                raise
            logger.warning("Using stale split data for %d: %s", year, exc)
            return parse_split_year(cached[0])

        if text is None:
            return []
        if self.cache is not None:
            self.cache.put(year, text, self.now())
        return parse_split_year(text)

    async def _download(self, url: str) -> str | None:
        try:
            if self.client is not None:
                response = await self.client.get(url)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url)
        except httpx.HTTPError as exc:
            raise SplitLookupError(url, str(exc) or type(exc).__name__) from exc
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise SplitLookupError(url, f"HTTP {response.status_code}")
        return response.text
