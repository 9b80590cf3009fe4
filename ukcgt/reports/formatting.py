"""Shared Jinja2 filters for text reports."""

from decimal import ROUND_HALF_UP, Decimal

from jinja2 import Environment

PENNY = Decimal("0.01")


def format_gbp(value: Decimal | None) -> str:
    if value is None:
        return "-"
    amount = Decimal(value).quantize(PENNY, rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    return f"{sign}£{abs(amount):,.2f}"


def format_quantity(value: Decimal | None) -> str:
    if value is None:
        return "-"
    normalized = Decimal(value).normalize()
    return f"{normalized:f}"


def register_filters(env: Environment) -> Environment:
    env.filters["gbp"] = format_gbp
    env.filters["qty"] = format_quantity
    return env
