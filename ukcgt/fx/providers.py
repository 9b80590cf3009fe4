"""FX rate providers, one per strategy.

Every provider resolves a rate as units of foreign currency per 1 GBP, consults
the persistent cache first and caches what it fetches under
``{strategy}-{date_key}-{currency}``.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator
from datetime import date, timedelta
from decimal import Decimal

from ukcgt.currencies import GBP
from ukcgt.db.repository import RateCache
from ukcgt.exceptions import DataValidationError, RateError, RateUnavailableError
from ukcgt.fx.sources import FrankfurterSource, HMRCMonthlySource, HMRCYearlySource
from ukcgt.models.enums import FX_STRATEGY_SOURCES, FXStrategy
from ukcgt.models.fx import RateCacheEntry, RateResult, cache_key

logger = logging.getLogger(__name__)

# HMRC publishes average rate files at the end of December and March.
AVERAGE_FILE_MONTHS = (12, 3)
FIRST_AVERAGE_FILE_YEAR = 2020
MONTHLY_DERIVED_SOURCE = "HMRC Monthly Exchange Rates (yearly average)"

MAX_LOOKBACK_DAYS = 7
MAX_BATCH_DAYS = 365


def iter_days(start: date, end: date) -> Iterator[date]:
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def iter_months(start: date, end: date) -> Iterator[tuple[int, int]]:
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        yield year, month
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)


def split_into_batches(days: Iterable[date], max_days: int = MAX_BATCH_DAYS) -> list[tuple[date, date]]:
    """Group dates into (start, end) ranges spanning at most ``max_days`` days."""
    ordered = sorted(set(days))
    if not ordered:
        return []
    batches: list[tuple[date, date]] = []
    batch_start = batch_end = ordered[0]
    for day in ordered[1:]:
        if (day - batch_start).days >= max_days:
            batches.append((batch_start, batch_end))
            batch_start = day
        batch_end = day
    batches.append((batch_start, batch_end))
    return batches


class BaseRateProvider(ABC):
    """Cache-first rate lookup shared by all strategies."""

    strategy: FXStrategy

    def __init__(self, cache: RateCache):
        self.cache = cache

    @property
    def source_name(self) -> str:
        return FX_STRATEGY_SOURCES[self.strategy]

    @abstractmethod
    def date_key(self, d: date) -> str:
        """Return the period key a rate for ``d`` is published under."""

    @abstractmethod
    async def _fetch_rate(self, d: date, currency: str) -> Decimal:
        """Fetch a rate from the strategy's source. Raise RateError on failure."""

    def cache_key(self, d: date, currency: str) -> str:
        return cache_key(self.strategy, self.date_key(d), currency)

    async def get_rate(self, d: date, currency: str) -> RateResult:
        currency = currency.upper()
        if currency == GBP:
            return self._result(Decimal("1"), d, currency)

        cached = self.cache.get(self.cache_key(d, currency))
        if cached is not None:
            logger.debug("Cache hit %s", cached.key)
            return self._result(cached.rate, d, currency, cached.source)

        rate = await self._fetch_rate(d, currency)
        self.cache.put(self._entry(self.date_key(d), currency, rate))
        return self._result(rate, d, currency)

    async def prefetch_rates(self, start: date, end: date, currencies: Iterable[str]) -> None:
        """Warm the cache for a date range. The default does nothing."""
        return None

    def _entry(self, date_key: str, currency: str, rate: Decimal) -> RateCacheEntry:
        return RateCacheEntry(
            strategy=self.strategy,
            date_key=date_key,
            currency=currency,
            rate=rate,
            source=self.source_name,
        )

    def _result(
        self, rate: Decimal, d: date, currency: str, source: str | None = None
    ) -> RateResult:
        return RateResult(
            rate=rate,
            date_key=self.date_key(d),
            currency=currency,
            strategy=self.strategy,
            source=source or self.source_name,
        )

    def _unavailable(self, d: date, currency: str, reason: str) -> RateUnavailableError:
        return RateUnavailableError(self.strategy.value, self.date_key(d), currency, reason)


class HMRCMonthlyProvider(BaseRateProvider):
    """One fixed HMRC rate per calendar month."""

    strategy = FXStrategy.HMRC_MONTHLY

    def __init__(self, cache: RateCache, source: HMRCMonthlySource | None = None):
        super().__init__(cache)
        self.source = source or HMRCMonthlySource()

    def date_key(self, d: date) -> str:
        return f"{d.year:04d}-{d.month:02d}"

    async def _fetch_rate(self, d: date, currency: str) -> Decimal:
        rates = await self._load_month(d.year, d.month)
        if not rates:
            raise self._unavailable(d, currency, "monthly rates not yet published")
        if currency not in rates:
            raise self._unavailable(d, currency, "currency not in HMRC monthly rates")
        return rates[currency]

    async def _load_month(self, year: int, month: int) -> dict[str, Decimal]:
        rates = await self.source.fetch_month(year, month)
        date_key = f"{year:04d}-{month:02d}"
        self.cache.bulk_put(self._entry(date_key, c, r) for c, r in rates.items())
        return rates

    async def prefetch_rates(self, start: date, end: date, currencies: Iterable[str]) -> None:
        wanted = sorted({c.upper() for c in currencies} - {GBP})
        if not wanted:
            return
        for year, month in iter_months(start, end):
            date_key = f"{year:04d}-{month:02d}"
            if all(self.cache.get(cache_key(self.strategy, date_key, c)) for c in wanted):
                continue
            try:
                await self._load_month(year, month)
            except RateError as exc:
                logger.warning("Prefetch of HMRC rates for %s failed: %s", date_key, exc)


class HMRCYearlyProvider(BaseRateProvider):
    """HMRC average rates for the calendar year.

    The December file is preferred; the March file covers early-year
    transactions before December is published. When neither exists the average
    of HMRC monthly rates already cached for the year is used, uncached.
    """

    strategy = FXStrategy.HMRC_YEARLY_AVG

    def __init__(
        self,
        cache: RateCache,
        source: HMRCYearlySource | None = None,
        today: Callable[[], date] = date.today,
    ):
        super().__init__(cache)
        self.source = source or HMRCYearlySource()
        self.today = today
        self._year_tasks: dict[int, asyncio.Task] = {}

    def date_key(self, d: date) -> str:
        return f"{d.year:04d}"

    async def get_rate(self, d: date, currency: str) -> RateResult:
        try:
            return await super().get_rate(d, currency)
        except RateUnavailableError:
            average = self._average_of_monthly_rates(d.year, currency.upper())
            if average is None:
                raise
            logger.warning(
                "No HMRC average rate file for %s %d; using cached monthly rates",
                currency.upper(),
                d.year,
            )
            return self._result(average, d, currency.upper(), MONTHLY_DERIVED_SOURCE)

    async def _fetch_rate(self, d: date, currency: str) -> Decimal:
        rates = await self._year_rates(d.year)
        if rates is None:
            raise self._unavailable(d, currency, self._missing_year_reason(d.year))
        if currency not in rates:
            raise self._unavailable(d, currency, "currency not in HMRC average rates")
        return rates[currency]

    async def _year_rates(self, year: int) -> dict[str, Decimal] | None:
        task = self._year_tasks.get(year)
        if task is None:
            task = asyncio.ensure_future(self._load_year(year))
            self._year_tasks[year] = task
        try:
            rates = await asyncio.shield(task)
        except Exception:
            self._forget_year(year, task)
            raise
        # Not published yet; ask again next time.
        if rates is None:
            self._forget_year(year, task)
        return rates

    def _forget_year(self, year: int, task: asyncio.Task) -> None:
        if self._year_tasks.get(year) is task:
            del self._year_tasks[year]

    async def _load_year(self, year: int) -> dict[str, Decimal] | None:
        last_error: RateError | None = None
        for month in AVERAGE_FILE_MONTHS:
            try:
                rates = await self.source.fetch_average(year, month)
            except RateError as exc:
                logger.warning("HMRC average rates %d-%d unavailable: %s", year, month, exc)
                last_error = exc
                continue
            if rates:
                self.cache.bulk_put(
                    self._entry(f"{year:04d}", c, r) for c, r in rates.items()
                )
                return rates
        if last_error is not None:
            raise last_error
        return None

    def _missing_year_reason(self, year: int) -> str:
        if year >= self.today().year:
            return "yearly averages are not yet published (published 31 December)"
        if year < FIRST_AVERAGE_FILE_YEAR:
            return f"yearly averages are not available before {FIRST_AVERAGE_FILE_YEAR}"
        return "no HMRC average rate file could be loaded"

    def _average_of_monthly_rates(self, year: int, currency: str) -> Decimal | None:
        entries = self.cache.find(FXStrategy.HMRC_MONTHLY, f"{year:04d}-", currency)
        if not entries:
            return None
        return sum((e.rate for e in entries), Decimal("0")) / len(entries)


class DailySpotProvider(BaseRateProvider):
    """ECB daily reference rates. Weekends and holidays use the last prior rate."""

    strategy = FXStrategy.DAILY_SPOT

    def __init__(self, cache: RateCache, source: FrankfurterSource | None = None):
        super().__init__(cache)
        self.source = source or FrankfurterSource()

    def date_key(self, d: date) -> str:
        return d.isoformat()

    async def _fetch_rate(self, d: date, currency: str) -> Decimal:
        series = await self.source.fetch_series(
            d - timedelta(days=MAX_LOOKBACK_DAYS), d, [currency]
        )
        self.cache.bulk_put(
            self._entry(day.isoformat(), c, rate)
            for day, rates in series.items()
            for c, rate in rates.items()
        )
        for offset in range(MAX_LOOKBACK_DAYS + 1):
            rate = series.get(d - timedelta(days=offset), {}).get(currency)
            if rate is not None:
                return rate
        raise self._unavailable(
            d, currency, f"no ECB rate within {MAX_LOOKBACK_DAYS} days"
        )

    async def prefetch_rates(self, start: date, end: date, currencies: Iterable[str]) -> None:
        wanted = sorted({c.upper() for c in currencies} - {GBP})
        if not wanted:
            return
        uncached = [
            day
            for day in iter_days(start, end)
            if any(self.cache.get(self.cache_key(day, c)) is None for c in wanted)
        ]
        for batch_start, batch_end in split_into_batches(uncached):
            fetch_start = batch_start - timedelta(days=MAX_LOOKBACK_DAYS)
            try:
                series = await self.source.fetch_series(fetch_start, batch_end, wanted)
            except RateError as exc:
                logger.warning(
                    "Prefetch of daily rates %s..%s failed: %s", batch_start, batch_end, exc
                )
                continue
            self.cache.bulk_put(self._fill_forward(series, fetch_start, batch_end, wanted))

    def _fill_forward(
        self,
        series: dict[date, dict[str, Decimal]],
        start: date,
        end: date,
        currencies: list[str],
    ) -> list[RateCacheEntry]:
        """Entries for every day in range, carrying rates over gaps of up to a week."""
        entries: list[RateCacheEntry] = []
        last_seen: dict[str, tuple[date, Decimal]] = {}
        for day in iter_days(start, end):
            for currency in currencies:
                rate = series.get(day, {}).get(currency)
                if rate is not None:
                    last_seen[currency] = (day, rate)
                elif currency in last_seen:
                    seen_day, rate = last_seen[currency]
                    if (day - seen_day).days > MAX_LOOKBACK_DAYS:
                        continue
                else:
                    continue
                entries.append(self._entry(day.isoformat(), currency, rate))
        return entries


PROVIDERS: dict[FXStrategy, type[BaseRateProvider]] = {
    FXStrategy.HMRC_MONTHLY: HMRCMonthlyProvider,
    FXStrategy.HMRC_YEARLY_AVG: HMRCYearlyProvider,
    FXStrategy.DAILY_SPOT: DailySpotProvider,
}


def build_provider(strategy: FXStrategy | str, cache: RateCache, source=None) -> BaseRateProvider:
    """Create the provider for ``strategy``. Unknown strategies are rejected."""
    try:
        provider_cls = PROVIDERS[FXStrategy(strategy)]
    except (KeyError, ValueError):
        raise DataValidationError("strategy", f"Unknown FX strategy: {strategy!r}") from None
    if source is None:
        return provider_cls(cache)
    return provider_cls(cache, source)
