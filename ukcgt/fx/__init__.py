"""FX rate resolution and GBP enrichment."""

from ukcgt.fx.manager import FXManager, convert_to_gbp
from ukcgt.fx.providers import (
    BaseRateProvider,
    DailySpotProvider,
    HMRCMonthlyProvider,
    HMRCYearlyProvider,
    build_provider,
)
from ukcgt.fx.sources import FrankfurterSource, HMRCMonthlySource, HMRCYearlySource

__all__ = [
    "BaseRateProvider",
    "build_provider",
    "convert_to_gbp",
    "DailySpotProvider",
    "FrankfurterSource",
    "FXManager",
    "HMRCMonthlyProvider",
    "HMRCMonthlySource",
    "HMRCYearlyProvider",
    "HMRCYearlySource",
]
