"""
Finsight — FRED Provider
─────────────────────────
Federal Reserve Economic Data: the economic-indicator block of the
market context (standard and premium tiers).

FRED series used:
  CPIAUCSL       — CPI index; YoY % computed from the last 13 monthly prints
  FEDFUNDS       — Federal funds effective rate
  MORTGAGE30US   — 30-year fixed mortgage average (weekly)
  TERMCBCCALLNS  — Commercial bank credit card APR (quarterly)
  UNRATE         — Unemployment rate (optional in the snapshot)
  DGS10          — 10-year treasury (aggregator only)

A series that fails falls back to the last good value this adapter saw.
If one of the four core series has never been fetched successfully the
whole call raises ProviderUnavailable — no half-built snapshots.
"""

import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from market_engine.models.market_data import EconomicIndicators, MarketDataPoint
from market_engine.orchestrator.rate_limiter import bucket_for
from market_providers.base import Provider, ProviderUnavailable

log = logging.getLogger("fs.providers.fred")

FRED_API_KEY  = os.environ.get("FRED_API_KEY", "")
FRED_BASE_URL = "https://api.stlouisfed.org/fred/series/observations"

SERIES_NAMES = {
    "CPIAUCSL":      "Consumer Price Index",
    "FEDFUNDS":      "Federal Funds Rate",
    "MORTGAGE30US":  "30-Year Fixed Rate Mortgage",
    "TERMCBCCALLNS": "Credit Card Interest Rate",
    "UNRATE":        "Unemployment Rate",
    "DGS10":         "10-Year Treasury Rate",
}


class FREDProvider(Provider):
    name = "fred"

    def __init__(self, api_key: str = None, transport=None, bucket=None):
        super().__init__(FRED_API_KEY if api_key is None else api_key, transport)
        self._bucket = bucket or bucket_for("fred")
        self._last_good: Dict[str, MarketDataPoint] = {}

    async def get_series(self, series_id: str, limit: int = 1) -> List[Tuple[str, float]]:
        """Last `limit` observations, newest first, as (date, value)."""
        if not self.configured:
            raise ProviderUnavailable(self.name, "FRED_API_KEY not set")
        await self._bucket.wait()
        data = await self._get_json(FRED_BASE_URL, params={
            "series_id":  series_id,
            "api_key":    self.api_key,
            "file_type":  "json",
            "sort_order": "desc",
            "limit":      limit,
        })
        values = []
        for o in data.get("observations", []):
            try:
                values.append((o["date"], float(o["value"])))
            except (ValueError, KeyError):
                pass   # FRED publishes "." for missing prints
        if not values:
            raise ProviderUnavailable(self.name, f"{series_id}: no observations")
        return values

    async def get_data_point(self, series_id: str) -> MarketDataPoint:
        (date, value), = await self.get_series(series_id, 1)
        return MarketDataPoint(value=value, date=date, source="FRED", last_updated=_now_iso())

    async def get_cpi_yoy(self) -> MarketDataPoint:
        obs = await self.get_series("CPIAUCSL", 13)
        if len(obs) < 13:
            raise ProviderUnavailable(self.name, "CPIAUCSL: fewer than 13 monthly prints")
        (date, latest), (_, year_ago) = obs[0], obs[12]
        yoy = round((latest / year_ago - 1) * 100, 1)
        return MarketDataPoint(value=yoy, date=date, source="FRED", last_updated=_now_iso())

    async def _with_fallback(self, key: str, coro) -> Optional[MarketDataPoint]:
        try:
            point = await coro
            self._last_good[key] = point
            return point
        except ProviderUnavailable as e:
            prior = self._last_good.get(key)
            if prior:
                log.warning(f"{e} — using last good value from {prior.date}")
            else:
                log.warning(f"{e} — no fallback value")
            return prior

    async def get_economic_indicators(self) -> EconomicIndicators:
        if not self.configured:
            raise ProviderUnavailable(self.name, "FRED_API_KEY not set")

        cpi, fed_rate, mortgage, apr, unemployment = await asyncio.gather(
            self._with_fallback("cpi",             self.get_cpi_yoy()),
            self._with_fallback("fed_rate",        self.get_data_point("FEDFUNDS")),
            self._with_fallback("mortgage_rate",   self.get_data_point("MORTGAGE30US")),
            self._with_fallback("credit_card_apr", self.get_data_point("TERMCBCCALLNS")),
            self._with_fallback("unemployment",    self.get_data_point("UNRATE")),
        )

        missing = [name for name, v in (("cpi", cpi), ("fed_rate", fed_rate),
                                         ("mortgage_rate", mortgage),
                                         ("credit_card_apr", apr)) if v is None]
        if missing:
            raise ProviderUnavailable(self.name, f"core series unavailable: {missing}")

        return EconomicIndicators(
            cpi=cpi,
            fed_rate=fed_rate,
            mortgage_rate=mortgage,
            credit_card_apr=apr,
            unemployment=unemployment,
        )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
