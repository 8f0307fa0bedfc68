"""
Finsight — Market News Datum
─────────────────────────────
One normalised unit from any provider, as produced by the aggregator.

The payload is a tagged variant. Each record class carries its `kind`,
which becomes the datum's `type`:

  EconomicIndicatorRecord  → economic_indicator   (FRED series)
  MarketDataRecord         → market_data          (Polygon aggregates)
  NewsRecord               → news_article         (web search)
  RateRecord               → rate_information     (Alpha Vantage live rates)
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import ClassVar, Optional, Union

ECONOMIC_INDICATOR = "economic_indicator"
MARKET_DATA        = "market_data"
NEWS_ARTICLE       = "news_article"
RATE_INFORMATION   = "rate_information"


@dataclass(frozen=True)
class EconomicIndicatorRecord:
    kind: ClassVar[str] = ECONOMIC_INDICATOR

    series: str       # FRED series id, e.g. "FEDFUNDS"
    name:   str
    value:  float
    date:   str


@dataclass(frozen=True)
class MarketDataRecord:
    kind: ClassVar[str] = MARKET_DATA

    ticker:         str
    open:           float
    close:          float
    percent_change: float
    volume:         Optional[float] = None


@dataclass(frozen=True)
class NewsRecord:
    kind: ClassVar[str] = NEWS_ARTICLE

    title:       str
    description: str
    url:         str
    query:       str


@dataclass(frozen=True)
class RateRecord:
    kind: ClassVar[str] = RATE_INFORMATION

    category:    str   # "cd" | "treasury" | "mortgage"
    term:        str
    rate:        float
    institution: Optional[str] = None


NewsPayload = Union[EconomicIndicatorRecord, MarketDataRecord, NewsRecord, RateRecord]


@dataclass(frozen=True)
class MarketNewsDatum:
    source:    str          # "polygon" | "fred" | "brave_search" | "alpha_vantage"
    timestamp: datetime
    data:      NewsPayload
    relevance: float        # 0.0-1.0

    @property
    def type(self) -> str:
        return self.data.kind

    def to_dict(self) -> dict:
        return {
            "source":    self.source,
            "timestamp": self.timestamp.isoformat(),
            "type":      self.type,
            "data":      asdict(self.data),
            "relevance": round(self.relevance, 3),
        }
