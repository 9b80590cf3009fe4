"""Shared test fixtures for the UK CGT engine."""

import asyncio
from collections.abc import Callable
from datetime import date, timedelta
from decimal import Decimal

import pytest

from ukcgt.db.repository import InMemoryRateCache
from ukcgt.exceptions import RateFetchError
from ukcgt.models.enums import TransactionKind
from ukcgt.models.transaction import EnrichedTransaction, OptionDetails, Transaction
from ukcgt.tax_year import tax_year_label


class StubMonthlySource:
    """In-memory HMRC monthly feed that records every request."""

    def __init__(self, months: dict[tuple[int, int], dict[str, Decimal]] | None = None):
        self.months = months or {}
        self.calls: list[tuple[int, int]] = []
        self.error: Exception | None = None

    async def fetch_month(self, year: int, month: int) -> dict[str, Decimal]:
        self.calls.append((year, month))
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return dict(self.months.get((year, month), {}))


class StubYearlySource:
    def __init__(self, files: dict[tuple[int, int], dict[str, Decimal]] | None = None):
        self.files = files or {}
        self.calls: list[tuple[int, int]] = []

    async def fetch_average(self, year: int, month: int) -> dict[str, Decimal] | None:
        self.calls.append((year, month))
        await asyncio.sleep(0)
        return self.files.get((year, month))


class StubDailySource:
    """ECB series keyed by date. Set ``fail_all`` to simulate an outage."""

    def __init__(self, series: dict[date, dict[str, Decimal]] | None = None):
        self.series = series or {}
        self.calls: list[tuple[date, date, tuple[str, ...]]] = []
        self.fail_all = False

    async def fetch_series(
        self, start: date, end: date, currencies: list[str]
    ) -> dict[date, dict[str, Decimal]]:
        self.calls.append((start, end, tuple(currencies)))
        await asyncio.sleep(0)
        if self.fail_all:
            raise RateFetchError(f"stub://{start}..{end}", "connection refused")
        return {
            day: {c: r for c, r in rates.items() if c in currencies}
            for day, rates in self.series.items()
            if start <= day <= end
        }


def weekday_series(
    start: date, end: date, rates: dict[str, Decimal]
) -> dict[date, dict[str, Decimal]]:
    """A flat rate for every Monday to Friday in [start, end]."""
    series: dict[date, dict[str, Decimal]] = {}
    day = start
    while day <= end:
        if day.weekday() < 5:
            series[day] = dict(rates)
        day += timedelta(days=1)
    return series


@pytest.fixture
def cache() -> InMemoryRateCache:
    return InMemoryRateCache()


@pytest.fixture
def monthly_source() -> StubMonthlySource:
    return StubMonthlySource({
        (2024, 6): {"USD": Decimal("1.25"), "EUR": Decimal("1.18")},
        (2024, 9): {"USD": Decimal("1.30"), "EUR": Decimal("1.19")},
    })


@pytest.fixture
def make_tx() -> Callable[..., Transaction]:
    def _make(
        tx_id: str,
        kind: TransactionKind | str,
        on: date,
        quantity: str | None = None,
        price: str | None = None,
        total: str | None = None,
        fee: str | None = None,
        symbol: str = "ACME",
        currency: str = "GBP",
        **extra,
    ) -> Transaction:
        return Transaction(
            id=tx_id,
            source="test-broker",
            symbol=symbol,
            date=on,
            kind=kind,
            quantity=Decimal(quantity) if quantity is not None else None,
            price_per_unit=Decimal(price) if price is not None else None,
            currency=currency,
            total_native=Decimal(total) if total is not None else None,
            fee_native=Decimal(fee) if fee is not None else None,
            **extra,
        )

    return _make


@pytest.fixture
def make_enriched() -> Callable[..., EnrichedTransaction]:
    """Build a GBP-resolved transaction; totals default to quantity x price."""

    def _make(
        tx_id: str,
        kind: TransactionKind | str,
        on: date,
        quantity: str | None = None,
        price: str | None = None,
        total: str | None = None,
        fee: str | None = None,
        symbol: str = "ACME",
        currency: str = "GBP",
        **extra,
    ) -> EnrichedTransaction:
        qty = Decimal(quantity) if quantity is not None else None
        unit = Decimal(price) if price is not None else None
        if total is not None:
            total_gbp = Decimal(total)
        elif qty is not None and unit is not None:
            multiplier = extra["option"].contract_multiplier if extra.get("option") else Decimal("1")
            total_gbp = abs(qty * unit * multiplier)
        else:
            total_gbp = None
        return EnrichedTransaction(
            id=tx_id,
            source="test-broker",
            symbol=symbol,
            date=on,
            kind=kind,
            quantity=qty,
            price_per_unit=unit,
            currency=currency,
            total_native=total_gbp,
            fee_native=Decimal(fee) if fee is not None else None,
            total_gbp=total_gbp,
            fee_gbp=Decimal(fee) if fee is not None else None,
            price_gbp=unit,
            fx_rate=Decimal("1"),
            fx_source="Native GBP",
            tax_year=tax_year_label(on),
            **extra,
        )

    return _make


@pytest.fixture
def acme_call() -> OptionDetails:
    return OptionDetails(
        underlying="ACME",
        expiry=date(2024, 9, 20),
        strike=Decimal("150"),
        option_type="CALL",
    )


@pytest.fixture
def yearly_source() -> StubYearlySource:
    return StubYearlySource({
        (2023, 12): {"USD": Decimal("1.2436"), "EUR": Decimal("1.1497")},
    })


@pytest.fixture
def daily_source() -> StubDailySource:
    return StubDailySource(
        weekday_series(
            date(2023, 12, 1),
            date(2024, 12, 31),
            {"USD": Decimal("1.27"), "EUR": Decimal("1.17")},
        )
    )
