"""Tax-year summary and calculation result models."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from ukcgt.models.cgt import Disposal, Section104Pool
from ukcgt.models.transaction import EnrichedTransaction


class SA106Figures(BaseModel):
    """Foreign dividend income for the SA106 supplementary pages."""

    gross_gbp: Decimal
    withholding_gbp: Decimal
    net_gbp: Decimal


class RateChangeSplit(BaseModel):
    """2024/25 gains split around the 30 October 2024 CGT rate change (SA108 box 51)."""

    change_date: date
    disposal_count_before: int = 0
    gains_before: Decimal
    losses_before: Decimal
    disposal_count_after: int = 0
    gains_after: Decimal
    losses_after: Decimal
    adjustment_required: bool

    @property
    def net_before(self) -> Decimal:
        return self.gains_before + self.losses_before

    @property
    def net_after(self) -> Decimal:
        return self.gains_after + self.losses_after


class TaxYearSummary(BaseModel):
    tax_year: str
    start_date: date
    end_date: date
    # Capital gains
    disposal_count: int = 0
    total_proceeds: Decimal = Decimal("0")
    total_allowable_costs: Decimal = Decimal("0")
    total_gains: Decimal = Decimal("0")
    total_losses: Decimal = Decimal("0")  # <= 0
    net_gain_or_loss: Decimal = Decimal("0")
    annual_exempt_amount: Decimal = Decimal("0")
    loss_brought_forward: Decimal = Decimal("0")
    loss_used: Decimal = Decimal("0")
    loss_carried_forward: Decimal = Decimal("0")
    taxable_gain: Decimal = Decimal("0")
    incomplete_disposal_count: int = 0
    # Dividends
    dividend_count: int = 0
    gross_dividends_gbp: Decimal = Decimal("0")
    withholding_tax_gbp: Decimal = Decimal("0")
    net_dividends_gbp: Decimal = Decimal("0")
    dividend_allowance: Decimal = Decimal("0")
    taxable_dividends_gbp: Decimal = Decimal("0")
    # Interest
    interest_count: int = 0
    total_interest_gbp: Decimal = Decimal("0")
    sa106: SA106Figures | None = None
    rate_change: RateChangeSplit | None = None


class CalculationResult(BaseModel):
    transactions: list[EnrichedTransaction] = Field(default_factory=list)
    disposals: list[Disposal] = Field(default_factory=list)
    pools: dict[str, Section104Pool] = Field(default_factory=dict)
    summaries: list[TaxYearSummary] = Field(default_factory=list)
    unresolved: list[EnrichedTransaction] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    def summary_for(self, tax_year: str) -> TaxYearSummary | None:
        return next((s for s in self.summaries if s.tax_year == tax_year), None)
