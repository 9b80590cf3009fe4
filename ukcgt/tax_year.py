"""UK tax year helpers. Tax years run from 6 April to 5 April."""

from datetime import date

TAX_YEAR_START_MONTH = 4
TAX_YEAR_START_DAY = 6


def tax_year_start_year(d: date) -> int:
    """Return the calendar year in which the tax year containing ``d`` starts."""
    if (d.month, d.day) < (TAX_YEAR_START_MONTH, TAX_YEAR_START_DAY):
        return d.year - 1
    return d.year


def tax_year_label(d: date) -> str:
    """Return the tax year label for a date, e.g. 2024-06-17 -> "2024/25"."""
    start = tax_year_start_year(d)
    return f"{start}/{str(start + 1)[-2:]}"


def parse_tax_year(label: str) -> int:
    """Return the starting calendar year of a "YYYY/YY" label."""
    start, _, end = label.partition("/")
    if not start.isdigit() or len(start) != 4 or not end.isdigit() or len(end) != 2:
        raise ValueError(f"Invalid tax year label: {label!r}")
    year = int(start)
    if (year + 1) % 100 != int(end):
        raise ValueError(f"Invalid tax year label: {label!r}")
    return year


def tax_year_bounds(label: str) -> tuple[date, date]:
    """Return the inclusive (start, end) dates of a tax year."""
    year = parse_tax_year(label)
    return (
        date(year, TAX_YEAR_START_MONTH, TAX_YEAR_START_DAY),
        date(year + 1, TAX_YEAR_START_MONTH, TAX_YEAR_START_DAY - 1),
    )
