from .market_data import (
    UserTier, ALL_TIERS, MarketDataPoint, EconomicIndicators, CDRate,
    TreasuryYield, MortgageRate, LiveMarketData, SearchResult, SearchContext,
    SearchStatus, SearchOutcome,
)
from .news import (
    MarketNewsDatum, EconomicIndicatorRecord, MarketDataRecord, NewsRecord,
    RateRecord,
)

__all__ = [
    "UserTier", "ALL_TIERS", "MarketDataPoint", "EconomicIndicators", "CDRate",
    "TreasuryYield", "MortgageRate", "LiveMarketData", "SearchResult",
    "SearchContext", "SearchStatus", "SearchOutcome", "MarketNewsDatum",
    "EconomicIndicatorRecord", "MarketDataRecord", "NewsRecord", "RateRecord",
]
