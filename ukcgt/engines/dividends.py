"""Dividend withholding linkage.

Some brokers report withholding as a separate line next to the dividend (for
example Schwab's "NRA Tax Adj" for US non-resident alien withholding). The
dividend amount is gross; the tax line is the amount withheld.
"""

import logging
from collections.abc import Sequence
from decimal import Decimal

from ukcgt.models.enums import TransactionKind
from ukcgt.models.transaction import EnrichedTransaction

logger = logging.getLogger(__name__)


class DividendLinker:
    """Merge TAX_ON_DIVIDEND lines into the matching DIVIDEND.

    A tax line matches the first dividend with the same source, asset identity
    and date. Unlinked tax lines pass through unchanged.
    """

    def link(self, transactions: Sequence[EnrichedTransaction]) -> list[EnrichedTransaction]:
        dividends: dict[tuple, int] = {}
        for index, tx in enumerate(transactions):
            if tx.kind == TransactionKind.DIVIDEND:
                dividends.setdefault(self._key(tx), index)

        taxes: dict[int, list[EnrichedTransaction]] = {}
        linked_ids: set[str] = set()
        for tx in transactions:
            if tx.kind != TransactionKind.TAX_ON_DIVIDEND:
                continue
            index = dividends.get(self._key(tx))
            if index is None:
                logger.warning(
                    "Dividend tax %s for %s on %s has no matching dividend",
                    tx.id,
                    tx.symbol,
                    tx.event_date,
                )
                continue
            taxes.setdefault(index, []).append(tx)
            linked_ids.add(tx.id)

        linked: list[EnrichedTransaction] = []
        for index, tx in enumerate(transactions):
            if tx.kind == TransactionKind.TAX_ON_DIVIDEND and tx.id in linked_ids:
                continue
            if index in taxes:
                tx = self._merge(tx, taxes[index])
            linked.append(tx)
        return linked

    @staticmethod
    def _key(tx: EnrichedTransaction) -> tuple:
        return (tx.source, tx.asset_identity, tx.event_date)

    @staticmethod
    def _merge(
        dividend: EnrichedTransaction, taxes: list[EnrichedTransaction]
    ) -> EnrichedTransaction:
        gross = _first(dividend.gross_dividend, dividend.total_native)
        gross_gbp = _first(dividend.gross_dividend_gbp, dividend.total_gbp)
        withholding = (dividend.withholding_tax or Decimal("0")) + sum(
            (t.total_native or Decimal("0") for t in taxes), Decimal("0")
        )

        if dividend.fx_error is not None or any(t.fx_error for t in taxes):
            withholding_gbp = None
        else:
            withholding_gbp = (dividend.withholding_tax_gbp or Decimal("0")) + sum(
                (t.total_gbp or Decimal("0") for t in taxes), Decimal("0")
            )

        fields: dict[str, object] = {
            "gross_dividend": gross,
            "withholding_tax": withholding,
            "total_native": gross - withholding if gross is not None else None,
            "gross_dividend_gbp": gross_gbp,
            "withholding_tax_gbp": withholding_gbp,
            "total_gbp": (
                gross_gbp - withholding_gbp
                if gross_gbp is not None and withholding_gbp is not None
                else None
            ),
        }
        if withholding_gbp is None and dividend.fx_error is None:
            fields["fx_error"] = next(t.fx_error for t in taxes if t.fx_error)
        return EnrichedTransaction.from_transaction(dividend, **fields)


def _first(*values: Decimal | None) -> Decimal | None:
    return next((v for v in values if v is not None), None)
