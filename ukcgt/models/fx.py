"""FX rate models."""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from ukcgt.models.enums import FXStrategy


def cache_key(strategy: FXStrategy, date_key: str, currency: str) -> str:
    """Composite cache key, namespaced by strategy: ``{strategy}-{date_key}-{currency}``."""
    return f"{strategy.value}-{date_key}-{currency}"


class RateResult(BaseModel):
    """A resolved rate. ``rate`` is units of ``currency`` per 1 GBP."""

    model_config = ConfigDict(frozen=True)

    rate: Decimal = Field(gt=0)
    date_key: str
    currency: str
    strategy: FXStrategy
    source: str


class RateCacheEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    strategy: FXStrategy
    date_key: str
    currency: str
    rate: Decimal = Field(gt=0)
    source: str

    @property
    def key(self) -> str:
        return cache_key(self.strategy, self.date_key, self.currency)
