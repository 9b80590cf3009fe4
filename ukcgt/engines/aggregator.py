"""Tax-year aggregation of disposals, dividends and interest."""

import logging
from collections import defaultdict
from collections.abc import Sequence
from decimal import Decimal

from ukcgt.currencies import GBP
from ukcgt.engines.allowances import (
    RATE_CHANGE_DATE,
    RATE_CHANGE_TAX_YEAR,
    annual_exempt_amount,
    dividend_allowance,
)
from ukcgt.models.cgt import Disposal
from ukcgt.models.enums import TransactionKind
from ukcgt.models.reports import RateChangeSplit, SA106Figures, TaxYearSummary
from ukcgt.models.transaction import EnrichedTransaction
from ukcgt.tax_year import parse_tax_year, tax_year_bounds, tax_year_label

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _gains(disposals: Sequence[Disposal]) -> Decimal:
    return sum((d.gain_gbp for d in disposals if d.gain_gbp > 0), ZERO)


def _losses(disposals: Sequence[Disposal]) -> Decimal:
    return sum((d.gain_gbp for d in disposals if d.gain_gbp < 0), ZERO)


def dividend_gross_gbp(tx: EnrichedTransaction) -> Decimal:
    """Gross dividend in GBP. Without a separate gross figure the total is gross."""
    if tx.gross_dividend_gbp is not None:
        return tx.gross_dividend_gbp
    return tx.total_gbp or ZERO


class TaxYearAggregator:
    """Builds one TaxYearSummary per UK tax year (6 April to 5 April).

    Years are processed oldest first so that a net loss is carried forward into
    later years. Brought-forward losses are only used to reduce a net gain down
    to the annual exempt amount (TCGA92/S2(2)).
    """

    def aggregate(
        self,
        disposals: Sequence[Disposal],
        transactions: Sequence[EnrichedTransaction],
        loss_brought_forward: Decimal = ZERO,
    ) -> list[TaxYearSummary]:
        """Return summaries sorted most recent tax year first."""
        disposals_by_year: dict[str, list[Disposal]] = defaultdict(list)
        for disposal in disposals:
            disposals_by_year[disposal.tax_year].append(disposal)

        income_by_year: dict[str, list[EnrichedTransaction]] = defaultdict(list)
        years: set[str] = set(disposals_by_year)
        for tx in transactions:
            if not tx.is_resolved:
                continue
            year = tax_year_label(tx.event_date)
            years.add(year)
            if tx.kind in (TransactionKind.DIVIDEND, TransactionKind.INTEREST):
                income_by_year[year].append(tx)

        summaries: list[TaxYearSummary] = []
        carry = loss_brought_forward
        for year in sorted(years, key=parse_tax_year):
            summary = self._summarise(
                year, disposals_by_year.get(year, []), income_by_year.get(year, []), carry
            )
            carry = summary.loss_carried_forward
            summaries.append(summary)

        return sorted(summaries, key=lambda s: parse_tax_year(s.tax_year), reverse=True)

    def _summarise(
        self,
        year: str,
        disposals: list[Disposal],
        income: list[EnrichedTransaction],
        loss_brought_forward: Decimal,
    ) -> TaxYearSummary:
        start_year = parse_tax_year(year)
        start_date, end_date = tax_year_bounds(year)

        total_gains = _gains(disposals)
        total_losses = _losses(disposals)
        net = total_gains + total_losses
        exempt = annual_exempt_amount(start_year)

        if net < 0:
            loss_used = ZERO
            loss_carried = loss_brought_forward - net
        else:
            loss_used = min(loss_brought_forward, max(ZERO, net - exempt))
            loss_carried = loss_brought_forward - loss_used
        taxable_gain = max(ZERO, net - loss_used - exempt)

        incomplete = [d for d in disposals if d.is_incomplete or d.underfunded]
        if incomplete:
            logger.warning("%d incomplete disposal(s) in %s", len(incomplete), year)

        summary = TaxYearSummary(
            tax_year=year,
            start_date=start_date,
            end_date=end_date,
            disposal_count=len(disposals),
            total_proceeds=sum((d.proceeds_gbp for d in disposals), ZERO),
            total_allowable_costs=sum(
                (d.allowable_cost_gbp + d.disposal_fee_gbp for d in disposals), ZERO
            ),
            total_gains=total_gains,
            total_losses=total_losses,
            net_gain_or_loss=net,
            annual_exempt_amount=exempt,
            loss_brought_forward=loss_brought_forward,
            loss_used=loss_used,
            loss_carried_forward=loss_carried,
            taxable_gain=taxable_gain,
            incomplete_disposal_count=len(incomplete),
            rate_change=self._rate_change(year, disposals, net, exempt),
        )
        self._add_income(summary, income, start_year)
        return summary

    @staticmethod
    def _add_income(
        summary: TaxYearSummary, income: list[EnrichedTransaction], start_year: int
    ) -> None:
        dividends = [tx for tx in income if tx.kind == TransactionKind.DIVIDEND]
        interest = [tx for tx in income if tx.kind == TransactionKind.INTEREST]

        gross = sum((dividend_gross_gbp(tx) for tx in dividends), ZERO)
        withholding = sum((tx.withholding_tax_gbp or ZERO for tx in dividends), ZERO)
        allowance = dividend_allowance(start_year)

        summary.dividend_count = len(dividends)
        summary.gross_dividends_gbp = gross
        summary.withholding_tax_gbp = withholding
        summary.net_dividends_gbp = gross - withholding
        summary.dividend_allowance = allowance
        summary.taxable_dividends_gbp = max(ZERO, gross - allowance)
        summary.interest_count = len(interest)
        summary.total_interest_gbp = sum((tx.total_gbp or ZERO for tx in interest), ZERO)

        foreign = [tx for tx in dividends if tx.currency != GBP]
        foreign_gross = sum((dividend_gross_gbp(tx) for tx in foreign), ZERO)
        if foreign_gross > 0:
            foreign_withholding = sum((tx.withholding_tax_gbp or ZERO for tx in foreign), ZERO)
            summary.sa106 = SA106Figures(
                gross_gbp=foreign_gross,
                withholding_gbp=foreign_withholding,
                net_gbp=foreign_gross - foreign_withholding,
            )

    @staticmethod
    def _rate_change(
        year: str, disposals: list[Disposal], net: Decimal, exempt: Decimal
    ) -> RateChangeSplit | None:
        if year != RATE_CHANGE_TAX_YEAR:
            return None
        before = [d for d in disposals if d.disposal_date < RATE_CHANGE_DATE]
        after = [d for d in disposals if d.disposal_date >= RATE_CHANGE_DATE]
        return RateChangeSplit(
            change_date=RATE_CHANGE_DATE,
            disposal_count_before=len(before),
            gains_before=_gains(before),
            losses_before=_losses(before),
            disposal_count_after=len(after),
            gains_after=_gains(after),
            losses_after=_losses(after),
            adjustment_required=bool(after) and net > exempt,
        )
