"""End-to-end CGT calculation over enriched transactions."""

import logging
from collections.abc import Sequence
from decimal import Decimal

from ukcgt.engines.aggregator import TaxYearAggregator
from ukcgt.engines.dividends import DividendLinker
from ukcgt.engines.matcher import MatchingEngine
from ukcgt.models.reports import CalculationResult
from ukcgt.models.transaction import EnrichedTransaction

logger = logging.getLogger(__name__)


class CGTCalculator:
    """Links dividends, matches disposals and aggregates by tax year.

    Transactions whose FX conversion failed are left out of matching and
    totals, and returned in ``CalculationResult.unresolved``.
    """

    def __init__(self, strict: bool = False):
        self.strict = strict

    def calculate(
        self,
        transactions: Sequence[EnrichedTransaction],
        loss_brought_forward: Decimal = Decimal("0"),
    ) -> CalculationResult:
        linked = DividendLinker().link(transactions)
        resolved = [tx for tx in linked if tx.is_resolved]
        unresolved = [tx for tx in linked if not tx.is_resolved]

        warnings = [f"Transaction {tx.id} has no GBP value: {tx.fx_error}" for tx in unresolved]
        if unresolved:
            logger.warning("%d transaction(s) excluded: FX conversion failed", len(unresolved))

        engine = MatchingEngine(strict=self.strict)
        disposals, pools = engine.match(resolved)
        warnings.extend(engine.warnings)

        summaries = TaxYearAggregator().aggregate(disposals, resolved, loss_brought_forward)
        return CalculationResult(
            transactions=linked,
            disposals=disposals,
            pools=pools,
            summaries=summaries,
            unresolved=unresolved,
            warnings=warnings,
        )
