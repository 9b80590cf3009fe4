"""Enumerations for the UK CGT engine."""

from enum import StrEnum


class TransactionKind(StrEnum):
    BUY = "BUY"
    SELL = "SELL"
    DIVIDEND = "DIVIDEND"
    TAX_ON_DIVIDEND = "TAX_ON_DIVIDEND"
    FEE = "FEE"
    INTEREST = "INTEREST"
    TRANSFER = "TRANSFER"
    TAX = "TAX"
    STOCK_SPLIT = "STOCK_SPLIT"
    OPTIONS_BUY_TO_OPEN = "OPTIONS_BUY_TO_OPEN"
    OPTIONS_SELL_TO_OPEN = "OPTIONS_SELL_TO_OPEN"
    OPTIONS_BUY_TO_CLOSE = "OPTIONS_BUY_TO_CLOSE"
    OPTIONS_SELL_TO_CLOSE = "OPTIONS_SELL_TO_CLOSE"
    OPTIONS_ASSIGNED = "OPTIONS_ASSIGNED"
    OPTIONS_EXPIRED = "OPTIONS_EXPIRED"
    OPTIONS_STOCK_SPLIT = "OPTIONS_STOCK_SPLIT"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def _missing_(cls, value: object) -> "TransactionKind":
        # Unrecognized kinds are inert rather than invalid.
        return cls.UNKNOWN


class OptionType(StrEnum):
    CALL = "CALL"
    PUT = "PUT"


class FXStrategy(StrEnum):
    HMRC_MONTHLY = "HMRC_MONTHLY"
    HMRC_YEARLY_AVG = "HMRC_YEARLY_AVG"
    DAILY_SPOT = "DAILY_SPOT"


class MatchRule(StrEnum):
    SHORT_SELL = "SHORT_SELL"
    SAME_DAY = "SAME_DAY"
    THIRTY_DAY = "THIRTY_DAY"
    SECTION_104 = "SECTION_104"


class PoolEventType(StrEnum):
    BUY = "BUY"
    SELL = "SELL"
    SPLIT = "SPLIT"


DEFAULT_FX_STRATEGY = FXStrategy.HMRC_MONTHLY

FX_STRATEGY_DISPLAY_NAMES: dict[FXStrategy, str] = {
    FXStrategy.HMRC_MONTHLY: "HMRC Monthly Rates",
    FXStrategy.HMRC_YEARLY_AVG: "HMRC Yearly Average",
    FXStrategy.DAILY_SPOT: "Daily Spot Rates (ECB)",
}

FX_STRATEGY_SOURCES: dict[FXStrategy, str] = {
    FXStrategy.HMRC_MONTHLY: "HMRC Monthly Exchange Rates",
    FXStrategy.HMRC_YEARLY_AVG: "HMRC Annual Average Rates",
    FXStrategy.DAILY_SPOT: "European Central Bank (via Frankfurter)",
}
