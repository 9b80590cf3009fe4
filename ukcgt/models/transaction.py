"""Canonical and FX-enriched transaction models."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ukcgt.currencies import GBP
from ukcgt.models.enums import OptionType, TransactionKind


class OptionDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    underlying: str
    expiry: date
    strike: Decimal
    option_type: OptionType
    contract_multiplier: Decimal = Decimal("100")


class Transaction(BaseModel):
    """A normalized brokerage transaction, as produced by an upstream parser."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    source: str
    symbol: str
    name: str | None = None
    event_date: date = Field(alias="date")
    kind: TransactionKind
    quantity: Decimal | None = None
    price_per_unit: Decimal | None = None
    currency: str = GBP
    total_native: Decimal | None = None
    fee_native: Decimal | None = None
    split_ratio: str | None = None
    gross_dividend: Decimal | None = None
    withholding_tax: Decimal | None = None
    is_short_sell: bool = False
    option: OptionDetails | None = None
    notes: str | None = None

    @field_validator("kind", mode="before")
    @classmethod
    def _coerce_kind(cls, value: object) -> TransactionKind:
        if isinstance(value, TransactionKind):
            return value
        return TransactionKind(str(value).upper())

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("total_native", "fee_native", "gross_dividend", "withholding_tax")
    @classmethod
    def _absolute(cls, value: Decimal | None) -> Decimal | None:
        return abs(value) if value is not None else None

    @property
    def is_option(self) -> bool:
        return self.option is not None

    @property
    def asset_identity(self) -> str:
        """Key under which holdings of this asset are matched and pooled.

        Options contracts are identified by underlying, expiry, strike and type,
        so each series is a distinct asset.
        """
        if self.option is None:
            return self.symbol
        opt = self.option
        return (
            f"{opt.underlying} {opt.expiry.isoformat()} "
            f"{opt.strike.normalize():f} {opt.option_type.value}"
        )

    @property
    def contract_multiplier(self) -> Decimal:
        if self.option is None:
            return Decimal("1")
        return self.option.contract_multiplier

    @property
    def abs_quantity(self) -> Decimal:
        return abs(self.quantity) if self.quantity is not None else Decimal("0")

    @property
    def consideration_native(self) -> Decimal | None:
        """Gross consideration before fees, in the transaction currency."""
        if self.total_native is not None:
            return self.total_native
        if self.quantity is None or self.price_per_unit is None:
            return None
        return abs(self.quantity * self.price_per_unit * self.contract_multiplier)


class EnrichedTransaction(Transaction):
    """Transaction plus its GBP conversion. The source transaction is never mutated."""

    total_gbp: Decimal | None = None
    fee_gbp: Decimal | None = None
    price_gbp: Decimal | None = None
    gross_dividend_gbp: Decimal | None = None
    withholding_tax_gbp: Decimal | None = None
    fx_rate: Decimal | None = None
    fx_date_key: str | None = None
    fx_source: str | None = None
    fx_error: str | None = None
    tax_year: str | None = None

    @classmethod
    def from_transaction(cls, tx: Transaction, **fields: object) -> "EnrichedTransaction":
        data = tx.model_dump()
        data.update(fields)
        return cls(**data)

    @property
    def is_resolved(self) -> bool:
        return self.fx_error is None
