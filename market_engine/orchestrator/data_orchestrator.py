"""
Finsight — Data Orchestrator
═════════════════════════════
Serves the ready-to-inject market context string for every chat request.

    text = await orchestrator.get_market_context_summary("standard", is_demo=False)

Flow
────
  1. key = market_context_<tier>_<is_demo>
  2. fresh entry (< 1h)        → return it, zero provider calls
  3. miss / stale              → fetch what the tier allows:
        starter   nothing
        standard  FRED economic indicators
        premium   FRED + Alpha Vantage live market data
  4. format → cache whole snapshot → return text

A provider failure (or a fetch that exceeds FETCH_TIMEOUT_S) drops only its
own section. The caller always gets a string back.

The search-context helper keeps its own cache and shares the process-wide
search IntervalLimiter with the market news aggregator.
"""

import asyncio
import hashlib
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from market_engine.cache.memory_cache import TTLCache
from market_engine.cache.ttl_config import REFRESH_TZ, TTL
from market_engine.models.market_data import (
    ALL_TIERS, EconomicIndicators, LiveMarketData, SearchContext, SearchOutcome,
    SearchResult, SearchStatus, UserTier,
)
from market_engine.models.sources import (
    sources_for_tier, tier_access, tier_limitations, unavailable_sources_for_tier,
    next_tier, upgrade_hints, upgrade_suggestions, TierAccess,
)
from market_engine.orchestrator.rate_limiter import ProviderLimiters
from market_providers import AlphaVantageProvider, FREDProvider, SearchProvider

log = logging.getLogger("fs.orchestrator")

FETCH_TIMEOUT_S    = float(os.environ.get("FETCH_TIMEOUT_S", "10"))
SEARCH_MAX_RESULTS = 5
DISPLAY_TZ         = ZoneInfo(REFRESH_TZ)

# ── Insight thresholds ────────────────────────────────────────
# cpi here is YoY %, not the CPIAUCSL index level used by key events.
FED_RATE_HIGH  = 5.0     # strictly greater
CPI_YOY_HIGH   = 3.2     # strictly greater
MORTGAGE_HIGH  = 7.0     # strictly greater
CD_RATE_HIGH   = 5.0     # greater or equal

INSIGHT_HIGH_RATES    = "High interest rates favor savers - consider high-yield savings accounts and CDs."
INSIGHT_INFLATION     = "Elevated inflation suggests TIPS or I-bonds - inflation-protected investments may be beneficial."
INSIGHT_MORTGAGE      = "High mortgage rates suggest waiting for better refinancing opportunities or considering ARMs."
INSIGHT_CD_LADDER     = "High-yield CD rates available - consider laddering CDs for steady income."
INSIGHT_STABLE        = "Market conditions are stable - maintain a balanced approach."
INSIGHT_NO_DATA       = "Market data is temporarily unavailable - base advice on the user's own financial picture."

STARTER_NOTE = "Market data is not included in the Starter plan - focus on personal financial analysis."
CLOSING_LINE = ("Use this current market context to provide informed financial advice. "
                "Reference specific rates and trends when relevant to the user's question.")


@dataclass
class MarketContextSnapshot:
    """What one cache entry holds: the text plus the data it was built from."""
    tier:                UserTier
    is_demo:             bool
    text:                str
    generated_at:        datetime
    economic_indicators: Optional[EconomicIndicators] = None
    live_market_data:    Optional[LiveMarketData] = None
    insights:            List[str] = field(default_factory=list)

    @property
    def sections(self) -> List[str]:
        return [line[:-1] for line in self.text.splitlines()
                if line.isupper() and line.endswith(":")]


def market_context_key(tier: UserTier, is_demo: bool) -> str:
    return f"market_context_{tier.value}_{str(bool(is_demo)).lower()}"


def search_key(query: str) -> str:
    return "search_" + hashlib.sha1(query.encode("utf-8")).hexdigest()[:16]


def format_timestamp(dt: datetime) -> str:
    """US locale style: 8/1/2025, 1:57:37 AM"""
    hour = dt.hour % 12 or 12
    ampm = "AM" if dt.hour < 12 else "PM"
    return f"{dt.month}/{dt.day}/{dt.year}, {hour}:{dt.minute:02d}:{dt.second:02d} {ampm}"


def _pct(value: float) -> str:
    return f"{value:g}%"


class DataOrchestrator:
    """Tier-aware cache in front of the FRED / Alpha Vantage / search adapters."""

    def __init__(
        self,
        fred=None,
        alpha_vantage=None,
        search=None,
        limiters: Optional[ProviderLimiters] = None,
        clock: Callable[[], float] = time.time,
        fetch_timeout: float = FETCH_TIMEOUT_S,
    ):
        self.fred          = fred if fred is not None else FREDProvider()
        self.alpha_vantage = alpha_vantage if alpha_vantage is not None else AlphaVantageProvider()
        self.search        = search if search is not None else SearchProvider()
        self.limiters      = limiters or ProviderLimiters()
        self.fetch_timeout = fetch_timeout
        self._clock        = clock

        self._market_cache = TTLCache(TTL["market_context"], clock)
        self._cache        = TTLCache(TTL["search"], clock)
        self._key_locks: Dict[str, asyncio.Lock] = {}

    # ── Tier access ───────────────────────────────────────────
    def get_tier_access(self, tier) -> TierAccess:
        return tier_access(UserTier.coerce(tier))

    # ── Market context ────────────────────────────────────────
    async def get_market_context_summary(self, tier, is_demo: bool = False) -> str:
        snapshot = await self.get_market_snapshot(tier, is_demo)
        return snapshot.text

    async def get_market_context(self, tier, is_demo: bool = False) -> str:
        return await self.get_market_context_summary(tier, is_demo)

    async def get_market_snapshot(self, tier, is_demo: bool = False) -> MarketContextSnapshot:
        tier = UserTier.coerce(tier)
        key  = market_context_key(tier, is_demo)

        cached = self._market_cache.get(key)
        if cached is not None:
            log.debug(f"{key}: cache hit")
            return cached

        # One rebuild per key at a time; late arrivals reuse the fresh entry.
        lock = self._key_locks.setdefault(key, asyncio.Lock())
        async with lock:
            cached = self._market_cache.get(key)
            if cached is not None:
                return cached
            log.info(f"{key}: cache miss — building")
            snapshot = await self._build_snapshot(tier, is_demo)
            self._market_cache.set(key, snapshot)
            return snapshot

    async def _build_snapshot(self, tier: UserTier, is_demo: bool) -> MarketContextSnapshot:
        access = tier_access(tier)
        econ = live = None

        if access.has_economic_context:
            econ = await self._fetch_section("economic indicators", self.fred.get_economic_indicators)
        if access.has_live_data:
            live = await self._fetch_section("live market data", self.alpha_vantage.get_live_market_data)

        generated_at = datetime.fromtimestamp(self._clock(), tz=timezone.utc).astimezone(DISPLAY_TZ)
        insights = generate_insights(econ, live)
        text = format_market_context(tier, generated_at, econ, live, insights)
        return MarketContextSnapshot(
            tier=tier, is_demo=is_demo, text=text, generated_at=generated_at,
            economic_indicators=econ, live_market_data=live, insights=insights,
        )

    async def _fetch_section(self, label: str, fetch):
        try:
            return await asyncio.wait_for(fetch(), timeout=self.fetch_timeout)
        except asyncio.TimeoutError:
            log.warning(f"{label}: no answer in {self.fetch_timeout:.0f}s — section omitted")
        except Exception as e:
            log.error(f"{label}: fetch failed — section omitted ({e})")
        return None

    async def build_tier_aware_context(self, tier, is_demo: bool = False) -> dict:
        """Market data plus what the tier can and cannot see, for the chat handler."""
        tier     = UserTier.coerce(tier)
        snapshot = await self.get_market_snapshot(tier, is_demo)
        upgrade  = next_tier(tier)
        market   = {}
        if snapshot.economic_indicators:
            market["economic_indicators"] = snapshot.economic_indicators.to_dict()
        if snapshot.live_market_data:
            market["live_market_data"] = snapshot.live_market_data.to_dict()

        return {
            "market_context": market,
            "tier_info": {
                "current_tier":        tier.value,
                "available_sources":   [s.name for s in sources_for_tier(tier)],
                "unavailable_sources": [s.name for s in unavailable_sources_for_tier(tier)],
                "upgrade_suggestions": upgrade_suggestions(tier),
                "next_tier":           upgrade.value if upgrade else None,
                "limitations":         tier_limitations(tier),
            },
            "upgrade_hints": upgrade_hints(tier),
        }

    async def force_refresh_all_context(self) -> None:
        """Rebuild every (tier × demo) entry. Run hourly by the scheduler."""
        t0 = time.monotonic()
        for tier in ALL_TIERS:
            for is_demo in (False, True):
                key = market_context_key(tier, is_demo)
                self._market_cache.invalidate(key)
                await self.get_market_snapshot(tier, is_demo)
        elapsed = round(time.monotonic() - t0, 1)
        log.info(f"Market context refreshed — {len(self._market_cache)} entries in {elapsed}s")

    # ── Search context ────────────────────────────────────────
    async def get_search_outcome(self, query: str, tier, is_demo: bool = False) -> SearchOutcome:
        tier = UserTier.coerce(tier)
        if not tier_access(tier).has_search_context:
            return SearchOutcome(SearchStatus.DENIED)

        key = search_key(query)
        cached = self._cache.get(key)
        if cached is not None:
            return SearchOutcome(SearchStatus.OK, cached)

        try:
            await self.limiters.search.wait()
            results = await asyncio.wait_for(
                self.search.search(SearchProvider.enhance_financial_query(query),
                                   max_results=SEARCH_MAX_RESULTS),
                timeout=self.fetch_timeout,
            )
        except Exception as e:
            log.warning(f"Search failed for {query!r}: {e}")
            return SearchOutcome(SearchStatus.UNAVAILABLE, error=str(e))

        context = SearchContext(query=query, results=list(results),
                                summary=summarise_search(query, results))
        self._cache.set(key, context)
        return SearchOutcome(SearchStatus.OK, context)

    async def get_search_context(self, query: str, tier, is_demo: bool = False) -> Optional[SearchContext]:
        """None when the tier has no search or the search failed; callers treat both alike."""
        outcome = await self.get_search_outcome(query, tier, is_demo)
        return outcome.context if outcome.ok else None

    # ── Cache management ──────────────────────────────────────
    def invalidate_cache(self, pattern: str) -> None:
        removed = self._market_cache.invalidate(pattern) + self._cache.invalidate(pattern)
        log.info(f"Cache invalidated for {pattern!r} — {len(removed)} entries removed")

    def get_cache_stats(self) -> dict:
        last = self._market_cache.last_set
        return {
            **self._cache.stats(),
            "marketContextCache": {
                **self._market_cache.stats(),
                "lastRefresh": (datetime.fromtimestamp(last, tz=timezone.utc).isoformat()
                                if last is not None else None),
            },
        }


# ─────────────────────────────────────────────────────────────
# FORMATTING
# ─────────────────────────────────────────────────────────────

def generate_insights(econ: Optional[EconomicIndicators],
                      live: Optional[LiveMarketData]) -> List[str]:
    """Fixed threshold rules. Economic indicators first, then live data."""
    insights = []
    if econ:
        if econ.fed_rate.value > FED_RATE_HIGH:
            insights.append(INSIGHT_HIGH_RATES)
        if econ.cpi.value > CPI_YOY_HIGH:
            insights.append(INSIGHT_INFLATION)
        if econ.mortgage_rate.value > MORTGAGE_HIGH:
            insights.append(INSIGHT_MORTGAGE)
    if live and any(cd.rate >= CD_RATE_HIGH for cd in live.cd_rates):
        insights.append(INSIGHT_CD_LADDER)
    return insights


def format_market_context(tier: UserTier, generated_at: datetime,
                          econ: Optional[EconomicIndicators],
                          live: Optional[LiveMarketData],
                          insights: List[str]) -> str:
    lines = [f"CURRENT MARKET CONTEXT (Updated: {format_timestamp(generated_at)}):", ""]

    if tier is UserTier.STARTER:
        lines += [STARTER_NOTE, "", CLOSING_LINE]
        return "\n".join(lines)

    if econ:
        lines.append("ECONOMIC INDICATORS:")
        lines.append(f"- Fed Funds Rate: {_pct(econ.fed_rate.value)}")
        lines.append(f"- CPI (YoY): {_pct(econ.cpi.value)}")
        lines.append(f"- 30-Year Mortgage Rate: {_pct(econ.mortgage_rate.value)}")
        lines.append(f"- Credit Card APR: {_pct(econ.credit_card_apr.value)}")
        if econ.unemployment:
            lines.append(f"- Unemployment Rate: {_pct(econ.unemployment.value)}")
        lines.append("")

    live_lines = _live_lines(live) if live else []
    if live_lines:
        lines.append("LIVE MARKET DATA:")
        lines += live_lines
        lines.append("")

    lines.append("KEY INSIGHTS:")
    if insights:
        lines += [f"- {i}" for i in insights]
    elif econ or live_lines:
        lines.append(f"- {INSIGHT_STABLE}")
    else:
        lines.append(f"- {INSIGHT_NO_DATA}")
    lines += ["", CLOSING_LINE]
    return "\n".join(lines)


def _live_lines(live: LiveMarketData) -> List[str]:
    rows = [
        ("CD Rates",        [(c.term, c.rate) for c in live.cd_rates]),
        ("Treasury Yields", [(t.term, t.yield_) for t in live.treasury_yields]),
        ("Mortgage Rates",  [(m.type, m.rate) for m in live.mortgage_rates]),
    ]
    return [
        f"- {label}: " + ", ".join(f"{term}: {_pct(rate)}" for term, rate in entries)
        for label, entries in rows if entries
    ]


def summarise_search(query: str, results: List[SearchResult], limit: int = SEARCH_MAX_RESULTS) -> str:
    header = f'Latest real-time information for "{query}":'
    if not results:
        return f"{header}\nNo recent information found for this query."
    lines = [header]
    for i, r in enumerate(results[:limit], 1):
        lines.append(f"{i}. {r.title}: {r.snippet} ({r.source})")
    return "\n".join(lines)
