"""Stock split handling (TCGA92/S127 reorganisations).

A split never changes total cost, only the number of units. To compare
quantities recorded on different dates, each event gets the cumulative factor
of all splits after it: multiplying by that factor expresses a quantity in
units as of the end of the history.
"""

import logging
from collections.abc import Sequence
from decimal import Decimal, InvalidOperation

from ukcgt.exceptions import InvalidSplitRatioError
from ukcgt.models.cgt import SplitRatio
from ukcgt.models.enums import TransactionKind
from ukcgt.models.transaction import Transaction

logger = logging.getLogger(__name__)

SPLIT_KINDS = frozenset({TransactionKind.STOCK_SPLIT, TransactionKind.OPTIONS_STOCK_SPLIT})


def parse_split_ratio(ratio: str | None) -> SplitRatio:
    """Parse a "new:old" ratio such as "10:1" (forward) or "1:10" (reverse)."""
    if not ratio or ":" not in ratio:
        raise InvalidSplitRatioError(ratio)
    new, _, old = ratio.partition(":")
    try:
        parsed_new, parsed_old = Decimal(new.strip()), Decimal(old.strip())
    except InvalidOperation:
        raise InvalidSplitRatioError(ratio) from None
    if not parsed_new.is_finite() or not parsed_old.is_finite():
        raise InvalidSplitRatioError(ratio)
    if parsed_new <= 0 or parsed_old <= 0:
        raise InvalidSplitRatioError(ratio)
    return SplitRatio(new=parsed_new, old=parsed_old)


def is_split(tx: Transaction) -> bool:
    return tx.kind in SPLIT_KINDS


def split_ratio_or_none(tx: Transaction) -> SplitRatio | None:
    """Parse a split transaction's ratio, logging and skipping invalid ones."""
    try:
        return parse_split_ratio(tx.split_ratio)
    except InvalidSplitRatioError as exc:
        logger.warning("Skipping split %s for %s: %s", tx.id, tx.symbol, exc)
        return None


def later_split_factors(
    events: Sequence[Transaction], ratios: dict[str, SplitRatio]
) -> list[Decimal]:
    """Cumulative multiplier of the splits that take effect after each event.

    ``events`` must be in processing order (splits first within a day). A
    split's own factor excludes itself, so a same-day acquisition, processed
    after the split, is already in post-split units.
    """
    factors: list[Decimal] = [Decimal("1")] * len(events)
    running = Decimal("1")
    for index in range(len(events) - 1, -1, -1):
        factors[index] = running
        ratio = ratios.get(events[index].id)
        if ratio is not None:
            running = running * ratio.new / ratio.old
    return factors
