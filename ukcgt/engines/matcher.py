"""HMRC share matching engine.

Disposals of each asset identity are matched, in order, against:
  1. Later acquisitions covering an open short position (FIFO)
  2. Acquisitions on the same day (TCGA92/S105(1))
  3. Acquisitions in the following 30 days (TCGA92/S106A(5))
  4. The Section 104 pool at average cost (TCGA92/S104)

Stock splits scale the pool and every open lot (TCGA92/S127).
"""

import logging
from collections import defaultdict, deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal

from ukcgt.engines.splits import is_split, later_split_factors, split_ratio_or_none
from ukcgt.exceptions import UnderfundedPoolError
from ukcgt.models.cgt import (
    AcquisitionMatch,
    Disposal,
    MatchingResult,
    Section104Pool,
    SplitRatio,
)
from ukcgt.models.enums import MatchRule, TransactionKind
from ukcgt.models.transaction import EnrichedTransaction
from ukcgt.tax_year import tax_year_label

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
THIRTY_DAYS = timedelta(days=30)
POOL_TRANSACTION_ID = "section-104-pool"

ACQUISITION_KINDS = frozenset({
    TransactionKind.BUY,
    TransactionKind.OPTIONS_BUY_TO_OPEN,
    TransactionKind.OPTIONS_BUY_TO_CLOSE,
})
DISPOSAL_KINDS = frozenset({
    TransactionKind.SELL,
    TransactionKind.OPTIONS_SELL_TO_OPEN,
    TransactionKind.OPTIONS_SELL_TO_CLOSE,
})
# Closing events at zero consideration. A negative quantity closes a long
# position (disposal); a positive one closes a short position (acquisition).
ZERO_CONSIDERATION_KINDS = frozenset({
    TransactionKind.OPTIONS_EXPIRED,
    TransactionKind.OPTIONS_ASSIGNED,
})

MATCH_RULE_ORDER = (
    MatchRule.SHORT_SELL,
    MatchRule.SAME_DAY,
    MatchRule.THIRTY_DAY,
    MatchRule.SECTION_104,
)


def is_acquisition(tx: EnrichedTransaction) -> bool:
    if tx.kind in ACQUISITION_KINDS:
        return True
    return tx.kind in ZERO_CONSIDERATION_KINDS and tx.quantity is not None and tx.quantity > 0


def is_disposal(tx: EnrichedTransaction) -> bool:
    if tx.kind in DISPOSAL_KINDS:
        return True
    return tx.kind in ZERO_CONSIDERATION_KINDS and tx.quantity is not None and tx.quantity < 0


def is_short_sale(tx: EnrichedTransaction) -> bool:
    return is_disposal(tx) and (tx.is_short_sell or tx.kind == TransactionKind.OPTIONS_SELL_TO_OPEN)


def is_matchable(tx: EnrichedTransaction) -> bool:
    return is_acquisition(tx) or is_disposal(tx) or is_split(tx)


@dataclass
class _Lot:
    """Working state of one acquisition. Quantities are in the lot's own units."""

    order: int
    tx: EnrichedTransaction
    quantity: Decimal
    cost_gbp: Decimal
    factor: Decimal
    remaining: Decimal = ZERO

    def __post_init__(self) -> None:
        self.remaining = self.quantity

    def cost_of(self, quantity: Decimal) -> Decimal:
        if quantity == self.quantity:
            return self.cost_gbp
        return self.cost_gbp * quantity / self.quantity


@dataclass
class _Sale:
    """Working state of one disposal. Quantities are in the disposal's own units."""

    order: int
    tx: EnrichedTransaction
    quantity: Decimal
    factor: Decimal
    short: bool
    remaining: Decimal = ZERO
    matches: dict[MatchRule, list[AcquisitionMatch]] = field(
        default_factory=lambda: defaultdict(list)
    )
    underfunded: bool = False

    def __post_init__(self) -> None:
        self.remaining = self.quantity


class MatchingEngine:
    """Applies the HMRC matching rules to enriched transactions.

    Each asset identity is processed independently from fresh state, so running
    the engine twice over the same input gives identical results.
    """

    def __init__(self, strict: bool = False):
        self.strict = strict
        self.warnings: list[str] = []

    def match(
        self, transactions: Sequence[EnrichedTransaction]
    ) -> tuple[list[Disposal], dict[str, Section104Pool]]:
        """Return disposals in chronological order and the final pools by asset identity."""
        self.warnings = []
        by_asset: dict[str, list[tuple[int, EnrichedTransaction]]] = defaultdict(list)
        for index, tx in enumerate(transactions):
            if not is_matchable(tx):
                continue
            if not tx.is_resolved:
                self._warn(f"Transaction {tx.id} excluded from matching: {tx.fx_error}")
                continue
            by_asset[tx.asset_identity].append((index, tx))

        disposals: list[Disposal] = []
        pools: dict[str, Section104Pool] = {}
        for asset_identity, indexed in by_asset.items():
            asset_disposals, pool = self._match_asset(asset_identity, indexed)
            disposals.extend(asset_disposals)
            if pool is not None:
                pools[asset_identity] = pool

        order = {tx.id: i for i, tx in enumerate(transactions)}
        disposals.sort(key=lambda d: (d.disposal_date, order.get(d.transaction_id, 0)))
        return disposals, pools

    def _match_asset(
        self, asset_identity: str, indexed: list[tuple[int, EnrichedTransaction]]
    ) -> tuple[list[Disposal], Section104Pool | None]:
        # Splits take effect before any other event on the same date.
        indexed = sorted(indexed, key=lambda item: (item[1].event_date, not is_split(item[1]), item[0]))
        events = [tx for _, tx in indexed]

        ratios: dict[str, SplitRatio] = {}
        for tx in events:
            if is_split(tx):
                ratio = split_ratio_or_none(tx)
                if ratio is None:
                    self.warnings.append(f"Invalid split ratio {tx.split_ratio!r} on {tx.id} ignored")
                else:
                    ratios[tx.id] = ratio
        factors = later_split_factors(events, ratios)

        lots: list[_Lot] = []
        sales: list[_Sale] = []
        for order, tx in enumerate(events):
            if is_split(tx):
                continue
            if tx.quantity is None or tx.quantity == 0:
                self._warn(f"{tx.kind} {tx.id} for {asset_identity} has no quantity; skipped")
                continue
            if is_acquisition(tx):
                lots.append(_Lot(order, tx, abs(tx.quantity), self._acquisition_cost(tx), factors[order]))
            else:
                sales.append(_Sale(order, tx, abs(tx.quantity), factors[order], is_short_sale(tx)))

        self._cover_shorts(lots, sales)
        long_sales = [s for s in sales if not s.short]
        self._match_same_day(lots, long_sales)
        self._match_thirty_day(lots, long_sales)
        pool = self._walk_pool(asset_identity, events, ratios, lots, long_sales)

        for sale in sales:
            if sale.short and sale.remaining > 0:
                self._warn(
                    f"Short sale {sale.tx.id} of {asset_identity} has {sale.remaining} uncovered"
                )
        return [self._build_disposal(asset_identity, sale) for sale in sales], pool

    @staticmethod
    def _acquisition_cost(tx: EnrichedTransaction) -> Decimal:
        """Allowable cost in GBP including fees. Zero-consideration closes cost nothing."""
        fee = tx.fee_gbp or ZERO
        if tx.kind in ZERO_CONSIDERATION_KINDS:
            return fee
        return (tx.total_gbp or ZERO) + fee

    def _cover_shorts(self, lots: list[_Lot], sales: list[_Sale]) -> None:
        """Later acquisitions cover the oldest open short first."""
        shorts = [s for s in sales if s.short]
        if not shorts:
            return
        # On a given day a short sale opens before an acquisition can cover it.
        timeline = sorted(
            [(s.tx.event_date, 0, s.order, s) for s in shorts]
            + [(lot.tx.event_date, 1, lot.order, lot) for lot in lots],
            key=lambda item: item[:3],
        )
        open_shorts: deque[_Sale] = deque()
        for _, _, _, item in timeline:
            if isinstance(item, _Sale):
                open_shorts.append(item)
                continue
            while open_shorts and item.remaining > 0:
                self._take(open_shorts[0], item, MatchRule.SHORT_SELL)
                if open_shorts[0].remaining <= 0:
                    open_shorts.popleft()

    def _match_same_day(self, lots: list[_Lot], sales: list[_Sale]) -> None:
        for sale in sales:
            for lot in lots:
                if sale.remaining <= 0:
                    break
                if lot.remaining > 0 and lot.tx.event_date == sale.tx.event_date:
                    self._take(sale, lot, MatchRule.SAME_DAY)

    def _match_thirty_day(self, lots: list[_Lot], sales: list[_Sale]) -> None:
        for sale in sales:
            disposal_date = sale.tx.event_date
            for lot in lots:
                if sale.remaining <= 0:
                    break
                if lot.remaining <= 0:
                    continue
                if disposal_date < lot.tx.event_date <= disposal_date + THIRTY_DAYS:
                    self._take(sale, lot, MatchRule.THIRTY_DAY)

    def _take(self, sale: _Sale, lot: _Lot, rule: MatchRule) -> None:
        """Match as much of ``sale`` as ``lot`` can fund, converting units across splits."""
        needed = sale.remaining * sale.factor / lot.factor
        if needed <= lot.remaining:
            taken, sale_units = needed, sale.remaining
        else:
            taken = lot.remaining
            sale_units = taken * lot.factor / sale.factor
        cost = lot.cost_of(taken)
        lot.remaining -= taken
        sale.remaining -= sale_units
        sale.matches[rule].append(
            AcquisitionMatch(
                transaction_id=lot.tx.id,
                acquisition_date=lot.tx.event_date,
                quantity=sale_units,
                cost_gbp=cost,
            )
        )

    def _walk_pool(
        self,
        asset_identity: str,
        events: list[EnrichedTransaction],
        ratios: dict[str, SplitRatio],
        lots: list[_Lot],
        sales: list[_Sale],
    ) -> Section104Pool | None:
        lots_by_order = {lot.order: lot for lot in lots}
        sales_by_order = {sale.order: sale for sale in sales}
        pool: Section104Pool | None = None

        for order, tx in enumerate(events):
            ratio = ratios.get(tx.id)
            if ratio is not None:
                if pool is not None:
                    pool.apply_split(ratio, tx.event_date, tx.id)
                continue

            lot = lots_by_order.get(order)
            if lot is not None:
                if lot.remaining > 0:
                    if pool is None:
                        pool = Section104Pool(asset_identity=asset_identity)
                    pool.add(lot.remaining, lot.cost_of(lot.remaining), tx.event_date, tx.id)
                    lot.remaining = ZERO
                continue

            sale = sales_by_order.get(order)
            if sale is None or sale.remaining <= 0:
                continue
            available = pool.quantity if pool is not None else ZERO
            if sale.remaining > available:
                if self.strict:
                    raise UnderfundedPoolError(asset_identity, tx.id, sale.remaining, available)
                sale.underfunded = True
                self._warn(
                    f"Disposal {tx.id} of {asset_identity} exceeds holding: "
                    f"requested {sale.remaining}, pool has {available}"
                )
            taken = min(sale.remaining, available)
            if taken > 0:
                cost = pool.remove(taken, tx.event_date, tx.id)
                sale.remaining -= taken
                sale.matches[MatchRule.SECTION_104].append(
                    AcquisitionMatch(
                        transaction_id=POOL_TRANSACTION_ID,
                        quantity=taken,
                        cost_gbp=cost,
                    )
                )
        return pool

    def _build_disposal(self, asset_identity: str, sale: _Sale) -> Disposal:
        tx = sale.tx
        proceeds = ZERO if tx.kind in ZERO_CONSIDERATION_KINDS else (tx.total_gbp or ZERO)
        matchings = [
            MatchingResult(
                rule=rule,
                quantity=sum((m.quantity for m in sale.matches[rule]), ZERO),
                cost_gbp=sum((m.cost_gbp for m in sale.matches[rule]), ZERO),
                acquisitions=sale.matches[rule],
            )
            for rule in MATCH_RULE_ORDER
            if sale.matches.get(rule)
        ]
        return Disposal(
            id=f"disposal-{tx.id}",
            transaction_id=tx.id,
            asset_identity=asset_identity,
            kind=tx.kind,
            disposal_date=tx.event_date,
            tax_year=tax_year_label(tx.event_date),
            currency=tx.currency,
            quantity=sale.quantity,
            proceeds_gbp=proceeds,
            disposal_fee_gbp=tx.fee_gbp or ZERO,
            matchings=matchings,
            unmatched_quantity=max(sale.remaining, ZERO),
            underfunded=sale.underfunded,
        )

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)
