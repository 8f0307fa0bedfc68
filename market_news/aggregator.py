"""
Finsight — Market News Aggregator
──────────────────────────────────
Polls every enabled source once and returns one relevance-ranked list of
MarketNewsDatum for the synthesizer.

Sources (priority order):
  1  polygon        previous-day moves of the index ETFs (needs POLYGON_API_KEY)
  2  fred           CPIAUCSL, FEDFUNDS, MORTGAGE30US, DGS10
  3  brave_search   five fixed financial news queries, 3 results each
  4  alpha_vantage  live rate table, disabled unless switched on

A source that raises contributes nothing; the rest carry on. If every
source fails the result is simply [] ("no fresh data"), never an error.

Relevance (0-1):
  economic   0.8 for CPI / Fed funds / 30Y mortgage, 0.6 otherwise;
             1.0 if FEDFUNDS > 5, 0.9 if CPIAUCSL index > 300,
             0.9 if MORTGAGE30US > 7
  news       keyword fraction × 0.7, +0.3 when the query is in the title
  market     min(1, |percent change| / 10)
  rates      flat 0.5
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from market_engine.models.news import (
    EconomicIndicatorRecord, MarketNewsDatum, NewsRecord, RateRecord,
)
from market_engine.orchestrator.rate_limiter import ProviderLimiters
from market_providers import AlphaVantageProvider, FREDProvider, PolygonProvider, SearchProvider
from market_providers.fred import SERIES_NAMES
from market_providers.polygon import MARKET_TICKERS

log = logging.getLogger("fs.news.aggregator")

FRED_SERIES    = ["CPIAUCSL", "FEDFUNDS", "MORTGAGE30US", "DGS10"]
KEY_SERIES     = {"CPIAUCSL", "FEDFUNDS", "MORTGAGE30US"}
SEARCH_QUERIES = [
    "current mortgage rates 2025",
    "federal reserve interest rate today",
    "inflation rate latest news",
    "stock market trends today",
    "economic indicators latest",
]
SEARCH_RESULTS_PER_QUERY = 3

NEWS_KEYWORDS = [
    "earnings", "revenue", "profit", "loss", "market", "economy",
    "inflation", "interest", "rate", "fed", "trading",
]

RATE_RELEVANCE = 0.5


@dataclass
class NewsSource:
    id:       str
    priority: int
    enabled:  bool

    def to_dict(self) -> dict:
        return {"id": self.id, "priority": self.priority, "enabled": self.enabled}


# ── Relevance scoring ─────────────────────────────────────────

def economic_relevance(series: str, value: float) -> float:
    if series == "FEDFUNDS" and value > 5:
        return 1.0
    if series == "CPIAUCSL" and value > 300:
        return 0.9
    if series == "MORTGAGE30US" and value > 7:
        return 0.9
    return 0.8 if series in KEY_SERIES else 0.6


def news_relevance(title: str, description: str, query: str) -> float:
    title_l, desc_l = title.lower(), description.lower()
    matches = sum(1 for k in NEWS_KEYWORDS if k in title_l or k in desc_l)
    score = matches / len(NEWS_KEYWORDS) * 0.7
    if query.lower() in title_l:
        score += 0.3
    return min(1.0, score)


def market_relevance(percent_change: float) -> float:
    return min(1.0, abs(percent_change) / 10)


def _observation_time(date: str) -> datetime:
    try:
        return datetime.strptime(date, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError:
        return datetime.now(timezone.utc)


# ─────────────────────────────────────────────────────────────

class MarketNewsAggregator:
    """Owns the limiter set for its lifetime; app.py shares it with the orchestrator."""

    def __init__(self, fred=None, search=None, polygon=None, alpha_vantage=None,
                 limiters: Optional[ProviderLimiters] = None):
        self.fred          = fred if fred is not None else FREDProvider()
        self.search        = search if search is not None else SearchProvider()
        self.polygon       = polygon if polygon is not None else PolygonProvider()
        self.alpha_vantage = alpha_vantage if alpha_vantage is not None else AlphaVantageProvider()
        self.limiters      = limiters or ProviderLimiters()

        self._sources: Dict[str, NewsSource] = {
            "polygon":       NewsSource("polygon",       1, bool(getattr(self.polygon, "configured", False))),
            "fred":          NewsSource("fred",          2, True),
            "brave_search":  NewsSource("brave_search",  3, True),
            "alpha_vantage": NewsSource("alpha_vantage", 4, False),
        }
        self._fetchers = {
            "polygon":       self._fetch_polygon,
            "fred":          self._fetch_fred,
            "brave_search":  self._fetch_search,
            "alpha_vantage": self._fetch_alpha_vantage,
        }

    def sources(self) -> List[NewsSource]:
        return sorted(self._sources.values(), key=lambda s: s.priority)

    def enable_source(self, source_id: str, enabled: bool = True):
        if source_id not in self._sources:
            raise ValueError(f"Unknown news source: {source_id!r}")
        self._sources[source_id].enabled = enabled
        log.info(f"News source {source_id} {'enabled' if enabled else 'disabled'}")

    async def aggregate_market_data(self) -> List[MarketNewsDatum]:
        t0 = time.monotonic()
        collected: List[MarketNewsDatum] = []

        for source in self.sources():
            if not source.enabled:
                continue
            try:
                items = await self._fetchers[source.id]()
                log.info(f"{source.id}: {len(items)} items")
                collected.extend(items)
            except Exception as e:
                log.error(f"{source.id}: fetch failed — skipped ({e})")

        collected.sort(key=lambda d: (d.relevance, d.timestamp), reverse=True)
        elapsed = round(time.monotonic() - t0, 1)
        log.info(f"Aggregated {len(collected)} items in {elapsed}s")
        return collected

    # ── Per-source fetchers ───────────────────────────────────
    async def _fetch_fred(self) -> List[MarketNewsDatum]:
        out = []
        for series in FRED_SERIES:
            try:
                point = await self.fred.get_data_point(series)
            except Exception as e:
                log.warning(f"FRED {series}: {e}")
                continue
            out.append(MarketNewsDatum(
                source="fred",
                timestamp=_observation_time(point.date),
                data=EconomicIndicatorRecord(
                    series=series, name=SERIES_NAMES.get(series, series),
                    value=point.value, date=point.date,
                ),
                relevance=economic_relevance(series, point.value),
            ))
        return out

    async def _fetch_search(self) -> List[MarketNewsDatum]:
        out = []
        for query in SEARCH_QUERIES:
            # shared with the orchestrator: one queue for all search traffic
            await self.limiters.search.wait()
            try:
                results = await self.search.search(query, max_results=SEARCH_RESULTS_PER_QUERY,
                                                   time_range="day")
            except Exception as e:
                log.warning(f"Search {query!r}: {e}")
                continue
            now = datetime.now(timezone.utc)
            for r in results:
                out.append(MarketNewsDatum(
                    source="brave_search",
                    timestamp=now,
                    data=NewsRecord(title=r.title, description=r.snippet, url=r.url, query=query),
                    relevance=news_relevance(r.title, r.snippet, query),
                ))
        return out

    async def _fetch_polygon(self) -> List[MarketNewsDatum]:
        bars = await self.polygon.get_market_snapshot(MARKET_TICKERS, limiter=self.limiters.polygon)
        return [
            MarketNewsDatum(
                source="polygon",
                timestamp=ts,
                data=record,
                relevance=market_relevance(record.percent_change),
            )
            for record, ts in bars
        ]

    async def _fetch_alpha_vantage(self) -> List[MarketNewsDatum]:
        live = await self.alpha_vantage.get_live_market_data()
        now  = datetime.now(timezone.utc)
        records = (
            [RateRecord("cd", c.term, c.rate, c.institution) for c in live.cd_rates]
            + [RateRecord("treasury", t.term, t.yield_) for t in live.treasury_yields]
            + [RateRecord("mortgage", m.type, m.rate) for m in live.mortgage_rates]
        )
        return [
            MarketNewsDatum(source="alpha_vantage", timestamp=now, data=r, relevance=RATE_RELEVANCE)
            for r in records
        ]
