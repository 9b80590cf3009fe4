"""Fill in stock splits the broker did not report.

Splits are looked up for every symbol the user traded, over the years from
the first transaction to the current year. A looked-up split within seven days
of a broker-reported split for the same symbol is the same event recorded on a
different date (ex-date against effective date), so the broker's record wins.
"""

import logging
from collections.abc import Callable, Sequence
from datetime import date, timedelta

from ukcgt.exceptions import SplitLookupError
from ukcgt.models.enums import TransactionKind
from ukcgt.models.transaction import Transaction
from ukcgt.splits.sources import SplitDataSource, SplitRecord

logger = logging.getLogger(__name__)

AUTO_SPLIT_SOURCE = "Auto-detected"
BROKER_SPLIT_WINDOW = timedelta(days=7)

HOLDING_KINDS = frozenset({
    TransactionKind.BUY,
    TransactionKind.SELL,
    TransactionKind.OPTIONS_BUY_TO_OPEN,
    TransactionKind.OPTIONS_SELL_TO_OPEN,
    TransactionKind.OPTIONS_BUY_TO_CLOSE,
    TransactionKind.OPTIONS_SELL_TO_CLOSE,
    TransactionKind.OPTIONS_ASSIGNED,
})


async def auto_splits_for(
    transactions: Sequence[Transaction],
    source: SplitDataSource,
    today: Callable[[], date] = date.today,
) -> list[Transaction]:
    """Return synthetic STOCK_SPLIT transactions for splits the broker did not report.

    A feed outage is logged and yields no splits, so the calculation still runs
    with whatever splits the broker supplied.
    """
    symbols = {tx.symbol for tx in transactions if tx.kind in HOLDING_KINDS and tx.symbol}
    if not symbols:
        return []
    first_year = min(tx.event_date.year for tx in transactions)
    last_year = max(max(tx.event_date.year for tx in transactions), today().year)

    try:
        records = await source.fetch_splits_for_years(list(range(first_year, last_year + 1)))
    except SplitLookupError as exc:
        logger.warning("Automatic split lookup failed: %s", exc)
        return []

    broker_splits = [
        (tx.symbol, tx.event_date)
        for tx in transactions
        if tx.kind == TransactionKind.STOCK_SPLIT
    ]
    splits: dict[str, Transaction] = {}
    for record in records:
        if record.symbol not in symbols:
            continue
        if any(
            symbol == record.symbol and abs(on - record.split_date) <= BROKER_SPLIT_WINDOW
            for symbol, on in broker_splits
        ):
            logger.debug("Broker already reports %s split near %s", record.symbol, record.split_date)
            continue
        tx = split_transaction(record)
        splits.setdefault(tx.id, tx)
    if splits:
        logger.info("Added %d automatically detected stock split(s)", len(splits))
    return list(splits.values())


async def with_auto_splits(
    transactions: Sequence[Transaction],
    source: SplitDataSource,
    today: Callable[[], date] = date.today,
) -> list[Transaction]:
    """``transactions`` followed by any automatically detected splits."""
    return [*transactions, *await auto_splits_for(transactions, source, today)]


def split_transaction(record: SplitRecord) -> Transaction:
    return Transaction(
        id=f"auto-split-{record.symbol}-{record.split_date.isoformat()}",
        source=AUTO_SPLIT_SOURCE,
        symbol=record.symbol,
        name=record.name,
        event_date=record.split_date,
        kind=TransactionKind.STOCK_SPLIT,
        split_ratio=str(record.ratio),
        notes=record.notes,
    )
