"""Section 104 pool, matching and disposal models.

Matching follows HMRC's statutory order:
  - Same-day rule: TCGA92/S105(1), CG51560
  - 30-day "bed and breakfast" rule: TCGA92/S106A(5) and (5A), CG51560
  - Section 104 pooled holding: TCGA92/S104, CG51620
Share reorganisations (splits) follow TCGA92/S127.
"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from ukcgt.models.enums import MatchRule, PoolEventType, TransactionKind

ZERO = Decimal("0")


class SplitRatio(BaseModel):
    """A "new:old" reorganisation ratio, e.g. 10:1 turns 1 share into 10."""

    model_config = ConfigDict(frozen=True)

    new: Decimal = Field(gt=0)
    old: Decimal = Field(gt=0)

    @property
    def multiplier(self) -> Decimal:
        return self.new / self.old

    def __str__(self) -> str:
        return f"{self.new.normalize():f}:{self.old.normalize():f}"


class PoolHistoryEntry(BaseModel):
    event_date: date
    event_type: PoolEventType
    quantity: Decimal
    cost_gbp: Decimal
    balance_quantity: Decimal
    balance_cost_gbp: Decimal
    transaction_id: str


class Section104Pool(BaseModel):
    """Averaged holding of one asset identity (HMRC CG51620).

    Created on the first acquisition into the pool and kept at zero quantity once
    fully disposed of.
    """

    asset_identity: str
    quantity: Decimal = ZERO
    total_cost_gbp: Decimal = ZERO
    history: list[PoolHistoryEntry] = Field(default_factory=list)

    @property
    def average_cost_gbp(self) -> Decimal:
        if self.quantity <= 0:
            return ZERO
        return self.total_cost_gbp / self.quantity

    def add(
        self,
        quantity: Decimal,
        cost_gbp: Decimal,
        event_date: date,
        transaction_id: str,
    ) -> None:
        """Add an acquisition to the pool at its GBP cost (fees included)."""
        if quantity <= 0:
            raise ValueError(f"Pool additions must be positive, got {quantity}")
        self.quantity += quantity
        self.total_cost_gbp += cost_gbp
        self._record(event_date, PoolEventType.BUY, quantity, cost_gbp, transaction_id)

    def remove(self, quantity: Decimal, event_date: date, transaction_id: str) -> Decimal:
        """Remove ``quantity`` at average cost. Returns the cost taken out of the pool."""
        if quantity <= 0:
            raise ValueError(f"Pool removals must be positive, got {quantity}")
        if quantity > self.quantity:
            raise ValueError(
                f"Cannot remove {quantity} from pool {self.asset_identity} holding {self.quantity}"
            )
        if quantity == self.quantity:
            cost = self.total_cost_gbp
        else:
            cost = self.total_cost_gbp * quantity / self.quantity
        self.quantity -= quantity
        self.total_cost_gbp -= cost
        self._record(event_date, PoolEventType.SELL, quantity, cost, transaction_id)
        return cost

    def apply_split(self, ratio: SplitRatio, event_date: date, transaction_id: str) -> None:
        """Scale quantity by new/old. Total cost is unchanged (TCGA92/S127)."""
        if self.quantity == 0:
            return
        self.quantity = self.quantity * ratio.new / ratio.old
        self._record(event_date, PoolEventType.SPLIT, self.quantity, ZERO, transaction_id)

    def _record(
        self,
        event_date: date,
        event_type: PoolEventType,
        quantity: Decimal,
        cost_gbp: Decimal,
        transaction_id: str,
    ) -> None:
        self.history.append(
            PoolHistoryEntry(
                event_date=event_date,
                event_type=event_type,
                quantity=quantity,
                cost_gbp=cost_gbp,
                balance_quantity=self.quantity,
                balance_cost_gbp=self.total_cost_gbp,
                transaction_id=transaction_id,
            )
        )


class AcquisitionMatch(BaseModel):
    """Part of an acquisition matched to a disposal. Quantity is in disposal units."""

    transaction_id: str
    acquisition_date: date | None = None
    quantity: Decimal
    cost_gbp: Decimal


class MatchingResult(BaseModel):
    rule: MatchRule
    quantity: Decimal
    cost_gbp: Decimal
    acquisitions: list[AcquisitionMatch] = Field(default_factory=list)


class Disposal(BaseModel):
    """Gain/loss computation for one disposal event."""

    id: str
    transaction_id: str
    asset_identity: str
    kind: TransactionKind
    disposal_date: date
    tax_year: str
    currency: str
    quantity: Decimal
    proceeds_gbp: Decimal
    disposal_fee_gbp: Decimal = ZERO
    matchings: list[MatchingResult] = Field(default_factory=list)
    unmatched_quantity: Decimal = ZERO
    underfunded: bool = False

    def _quantity_for(self, rule: MatchRule) -> Decimal:
        return sum((m.quantity for m in self.matchings if m.rule == rule), ZERO)

    def _cost_for(self, rule: MatchRule) -> Decimal:
        return sum((m.cost_gbp for m in self.matchings if m.rule == rule), ZERO)

    @property
    def same_day_quantity(self) -> Decimal:
        return self._quantity_for(MatchRule.SAME_DAY)

    @property
    def thirty_day_quantity(self) -> Decimal:
        return self._quantity_for(MatchRule.THIRTY_DAY)

    @property
    def pool_quantity(self) -> Decimal:
        return self._quantity_for(MatchRule.SECTION_104)

    @property
    def short_cover_quantity(self) -> Decimal:
        return self._quantity_for(MatchRule.SHORT_SELL)

    @property
    def matched_quantity(self) -> Decimal:
        return sum((m.quantity for m in self.matchings), ZERO)

    @property
    def same_day_cost_gbp(self) -> Decimal:
        return self._cost_for(MatchRule.SAME_DAY)

    @property
    def thirty_day_cost_gbp(self) -> Decimal:
        return self._cost_for(MatchRule.THIRTY_DAY)

    @property
    def pool_cost_gbp(self) -> Decimal:
        return self._cost_for(MatchRule.SECTION_104)

    @property
    def short_cover_cost_gbp(self) -> Decimal:
        return self._cost_for(MatchRule.SHORT_SELL)

    @property
    def allowable_cost_gbp(self) -> Decimal:
        return sum((m.cost_gbp for m in self.matchings), ZERO)

    @property
    def net_proceeds_gbp(self) -> Decimal:
        return self.proceeds_gbp - self.disposal_fee_gbp

    @property
    def gain_gbp(self) -> Decimal:
        return self.proceeds_gbp - self.allowable_cost_gbp - self.disposal_fee_gbp

    @property
    def is_incomplete(self) -> bool:
        return self.unmatched_quantity > 0
