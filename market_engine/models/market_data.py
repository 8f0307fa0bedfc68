"""
Finsight — Market Data Models
──────────────────────────────
Typed records returned by the provider adapters and consumed by the
Data Orchestrator.

  UserTier            subscription level gating every data source
  MarketDataPoint     one observation of one economic series
  EconomicIndicators  FRED snapshot (cpi is YoY %, not the index level)
  LiveMarketData      CD rates / treasury yields / mortgage rates (premium)
  SearchResult        one normalised web-search hit
  SearchContext       query + results + prompt-ready summary
  SearchOutcome       ok | denied | unavailable wrapper around SearchContext
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import List, Optional


class UserTier(str, Enum):
    STARTER  = "starter"
    STANDARD = "standard"
    PREMIUM  = "premium"

    @classmethod
    def coerce(cls, value) -> "UserTier":
        """Accept a UserTier or its string value. Anything else is a caller bug."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Unknown tier: {value!r}") from None


ALL_TIERS = (UserTier.STARTER, UserTier.STANDARD, UserTier.PREMIUM)


@dataclass(frozen=True)
class MarketDataPoint:
    value:        float
    date:         str     # observation date as published, e.g. "2025-07-01"
    source:       str
    last_updated: str     # ISO timestamp of the fetch


@dataclass(frozen=True)
class EconomicIndicators:
    cpi:             MarketDataPoint   # year-over-year %, derived from CPIAUCSL
    fed_rate:        MarketDataPoint
    mortgage_rate:   MarketDataPoint
    credit_card_apr: MarketDataPoint
    unemployment:    Optional[MarketDataPoint] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class CDRate:
    term:         str      # "3-month", "1-year", ...
    rate:         float
    institution:  str
    last_updated: str


@dataclass(frozen=True)
class TreasuryYield:
    term:         str
    yield_:       float
    last_updated: str


@dataclass(frozen=True)
class MortgageRate:
    type:         str      # "30-year-fixed", "5/1-arm", ...
    rate:         float
    last_updated: str


@dataclass(frozen=True)
class LiveMarketData:
    cd_rates:        List[CDRate]        = field(default_factory=list)
    treasury_yields: List[TreasuryYield] = field(default_factory=list)
    mortgage_rates:  List[MortgageRate]  = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class SearchResult:
    title:     str
    snippet:   str
    url:       str
    source:    str
    relevance: float


@dataclass
class SearchContext:
    query:   str
    results: List[SearchResult]
    summary: str

    def to_dict(self) -> dict:
        return {
            "query":   self.query,
            "results": [asdict(r) for r in self.results],
            "summary": self.summary,
        }


class SearchStatus(str, Enum):
    OK          = "ok"
    DENIED      = "denied"        # tier has no search capability
    UNAVAILABLE = "unavailable"   # provider failed this cycle


@dataclass
class SearchOutcome:
    status:  SearchStatus
    context: Optional[SearchContext] = None
    error:   Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is SearchStatus.OK
