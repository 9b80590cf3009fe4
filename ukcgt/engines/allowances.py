"""UK allowance and rate configuration.

Annual exempt amounts, dividend allowances and CGT rates, keyed by the calendar
year in which the tax year starts (2024 -> 2024/25). Never hardcode these in
computation functions.

Sources:
  - Annual exempt amount: TCGA92/S1K, HMRC CG10245
  - Dividend allowance: ITA07/S13A
  - 2024/25 rate change: Autumn Budget 2024, SA108 notes (box 51)
"""

from datetime import date
from decimal import Decimal

# ---------------------------------------------------------------------------
# CGT annual exempt amount: [(first tax year, amount), ...], most recent first.
# ---------------------------------------------------------------------------
ANNUAL_EXEMPT_AMOUNTS: list[tuple[int, Decimal]] = [
    (2024, Decimal("3000")),
    (2023, Decimal("6000")),
    (2020, Decimal("12300")),
    (2019, Decimal("12000")),
    (2018, Decimal("11700")),
    (2017, Decimal("11300")),
    (2015, Decimal("11100")),
]
ANNUAL_EXEMPT_AMOUNT_FLOOR = Decimal("11000")  # 2014/15 and earlier

# ---------------------------------------------------------------------------
# Dividend allowance, introduced 2016/17.
# ---------------------------------------------------------------------------
DIVIDEND_ALLOWANCES: list[tuple[int, Decimal]] = [
    (2024, Decimal("500")),
    (2023, Decimal("1000")),
    (2018, Decimal("2000")),
    (2016, Decimal("5000")),
]

# ---------------------------------------------------------------------------
# CGT main rates changed part way through 2024/25 for disposals on or after
# 30 October 2024.
# ---------------------------------------------------------------------------
RATE_CHANGE_TAX_YEAR = "2024/25"
RATE_CHANGE_DATE = date(2024, 10, 30)
CGT_RATES_BEFORE_CHANGE = (Decimal("0.10"), Decimal("0.20"))  # basic, higher
CGT_RATES_AFTER_CHANGE = (Decimal("0.18"), Decimal("0.24"))


def _lookup(table: list[tuple[int, Decimal]], start_year: int, default: Decimal) -> Decimal:
    for first_year, amount in table:
        if start_year >= first_year:
            return amount
    return default


def annual_exempt_amount(start_year: int) -> Decimal:
    """CGT annual exempt amount for the tax year starting in ``start_year``."""
    return _lookup(ANNUAL_EXEMPT_AMOUNTS, start_year, ANNUAL_EXEMPT_AMOUNT_FLOOR)


def dividend_allowance(start_year: int) -> Decimal:
    """Dividend allowance for the tax year starting in ``start_year``. Zero before 2016/17."""
    return _lookup(DIVIDEND_ALLOWANCES, start_year, Decimal("0"))
