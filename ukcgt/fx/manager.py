"""FX enrichment: attach GBP values to transactions under the active strategy."""

import asyncio
import logging
from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal

from ukcgt.currencies import GBP, is_fiat_currency
from ukcgt.db.repository import RateCache, SettingsRepository
from ukcgt.exceptions import DataValidationError, RateError, StrategySwitchError
from ukcgt.fx.providers import BaseRateProvider, build_provider
from ukcgt.models.enums import DEFAULT_FX_STRATEGY, FXStrategy
from ukcgt.models.fx import RateResult
from ukcgt.models.transaction import EnrichedTransaction, Transaction
from ukcgt.tax_year import tax_year_label

logger = logging.getLogger(__name__)

NATIVE_GBP_SOURCE = "Native GBP"


def convert_to_gbp(amount: Decimal, rate: Decimal) -> Decimal:
    """Convert a foreign amount to GBP. ``rate`` is currency units per 1 GBP."""
    if rate <= 0:
        raise DataValidationError("rate", f"FX rate must be positive, got {rate}")
    if rate == 1:
        return amount
    return amount / rate


class FXManager:
    """Owns the active strategy, its provider and the in-flight rate requests.

    Concurrent lookups for the same ``(strategy, period, currency)`` share one
    request. Switching strategy re-enriches every transaction under the new
    strategy and only takes effect if all of them convert.
    """

    def __init__(
        self,
        cache: RateCache,
        strategy: FXStrategy = DEFAULT_FX_STRATEGY,
        sources: dict[FXStrategy, object] | None = None,
        settings: SettingsRepository | None = None,
    ):
        self.cache = cache
        self.sources = sources or {}
        self.settings = settings
        self._strategy = FXStrategy(strategy)
        self._provider = self._build(self._strategy)
        self._in_flight: dict[str, asyncio.Task] = {}
        self._switch_lock = asyncio.Lock()

    @property
    def strategy(self) -> FXStrategy:
        return self._strategy

    @property
    def provider(self) -> BaseRateProvider:
        return self._provider

    async def get_rate(self, d: date, currency: str) -> RateResult:
        return await self._rate(self._provider, d, currency)

    async def prefetch_for(self, transactions: Iterable[Transaction]) -> None:
        await self._prefetch(self._provider, transactions)

    async def enrich(
        self, transactions: Sequence[Transaction], strict: bool = False
    ) -> list[EnrichedTransaction]:
        """Convert every transaction to GBP, preserving input order.

        A failed conversion yields a transaction with ``fx_error`` set unless
        ``strict`` is True, in which case the first rate failure is raised.
        """
        return await self._enrich_with(self._provider, transactions, strict)

    async def switch_strategy(
        self, strategy: FXStrategy, transactions: Sequence[Transaction]
    ) -> list[EnrichedTransaction]:
        """Re-enrich under ``strategy`` and make it active.

        On any failure the previous strategy stays active and
        StrategySwitchError is raised.
        """
        async with self._switch_lock:
            previous = self._strategy
            target = FXStrategy(strategy)
            provider = self._build(target)
            self._in_flight.clear()
            try:
                enriched = await self._enrich_with(provider, transactions, strict=True)
            except Exception as exc:
                logger.warning("FX strategy switch %s -> %s failed: %s", previous, target, exc)
                raise StrategySwitchError(previous.value, target.value, str(exc)) from exc

            self._strategy = target
            self._provider = provider
            if self.settings is not None:
                self.settings.set_fx_strategy(target)
            logger.info("FX strategy switched from %s to %s", previous, target)
            return enriched

    def _build(self, strategy: FXStrategy) -> BaseRateProvider:
        return build_provider(strategy, self.cache, self.sources.get(strategy))

    async def _rate(self, provider: BaseRateProvider, d: date, currency: str) -> RateResult:
        key = provider.cache_key(d, currency.upper())
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(provider.get_rate(d, currency))
            self._in_flight[key] = task
            task.add_done_callback(lambda done, key=key: self._discard(key, done))
        return await asyncio.shield(task)

    def _discard(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def _prefetch(
        self, provider: BaseRateProvider, transactions: Iterable[Transaction]
    ) -> None:
        convertible = [
            tx for tx in transactions if tx.currency != GBP and is_fiat_currency(tx.currency)
        ]
        if not convertible:
            return
        start = min(tx.event_date for tx in convertible)
        end = max(tx.event_date for tx in convertible)
        currencies = sorted({tx.currency for tx in convertible})
        try:
            await provider.prefetch_rates(start, end, currencies)
        except Exception:
            logger.warning(
                "FX prefetch %s..%s for %s failed", start, end, ",".join(currencies),
                exc_info=True,
            )

    async def _enrich_with(
        self,
        provider: BaseRateProvider,
        transactions: Sequence[Transaction],
        strict: bool,
    ) -> list[EnrichedTransaction]:
        await self._prefetch(provider, transactions)
        return list(
            await asyncio.gather(
                *(self._enrich_one(provider, tx, strict) for tx in transactions)
            )
        )

    async def _enrich_one(
        self, provider: BaseRateProvider, tx: Transaction, strict: bool
    ) -> EnrichedTransaction:
        tax_year = tax_year_label(tx.event_date)
        if tx.currency == GBP:
            return _with_rate(
                tx, Decimal("1"), provider.date_key(tx.event_date), NATIVE_GBP_SOURCE, tax_year
            )
        if not is_fiat_currency(tx.currency):
            # Crypto and other non-fiat assets need a GBP value supplied upstream.
            return EnrichedTransaction.from_transaction(
                tx,
                fx_error=f"No FX conversion available for non-fiat currency {tx.currency}",
                tax_year=tax_year,
            )
        try:
            result = await self._rate(provider, tx.event_date, tx.currency)
        except RateError as exc:
            if strict:
                raise
            logger.warning("FX conversion failed for transaction %s: %s", tx.id, exc)
            return EnrichedTransaction.from_transaction(tx, fx_error=str(exc), tax_year=tax_year)
        return _with_rate(tx, result.rate, result.date_key, result.source, tax_year)


def _with_rate(
    tx: Transaction, rate: Decimal, date_key: str, source: str, tax_year: str
) -> EnrichedTransaction:
    def gbp(amount: Decimal | None) -> Decimal | None:
        return convert_to_gbp(amount, rate) if amount is not None else None

    return EnrichedTransaction.from_transaction(
        tx,
        total_gbp=gbp(tx.consideration_native),
        fee_gbp=gbp(tx.fee_native),
        price_gbp=gbp(tx.price_per_unit),
        gross_dividend_gbp=gbp(tx.gross_dividend),
        withholding_tax_gbp=gbp(tx.withholding_tax),
        fx_rate=rate,
        fx_date_key=date_key,
        fx_source=source,
        tax_year=tax_year,
    )
