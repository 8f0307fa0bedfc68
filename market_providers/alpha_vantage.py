"""
Finsight — Alpha Vantage Provider
──────────────────────────────────
Live market data block for the premium tier.

  Treasury yields — TREASURY_YIELD function, daily interval, one call per
                    maturity. Cached in the adapter for 12h: the series is
                    daily and the free key allows 25 calls/day.
  CD rates        — national averages reference table
  Mortgage rates  — national averages reference table

Alpha Vantage answers quota problems with HTTP 200 and a "Note" or
"Information" body; both are treated as ProviderUnavailable.
"""

import logging
import os
from datetime import datetime, timezone
from typing import List, Optional

from market_engine.cache.memory_cache import TTLCache
from market_engine.cache.ttl_config import TTL
from market_engine.models.market_data import CDRate, LiveMarketData, MortgageRate, TreasuryYield
from market_engine.orchestrator.rate_limiter import bucket_for
from market_providers.base import Provider, ProviderUnavailable

log = logging.getLogger("fs.providers.alpha_vantage")

ALPHA_VANTAGE_API_KEY = os.environ.get("ALPHA_VANTAGE_API_KEY", "")
ALPHA_VANTAGE_URL     = "https://www.alphavantage.co/query"

# maturity param → display term
TREASURY_MATURITIES = [
    ("3month",  "3-month"),
    ("2year",   "2-year"),
    ("5year",   "5-year"),
    ("7year",   "7-year"),
    ("10year",  "10-year"),
    ("30year",  "30-year"),
]

NATIONAL_CD_AVERAGES = [
    ("3-month", 5.25),
    ("6-month", 5.35),
    ("1-year",  5.45),
    ("2-year",  5.55),
]

NATIONAL_MORTGAGE_AVERAGES = [
    ("30-year-fixed", 6.85),
    ("15-year-fixed", 6.25),
    ("5/1-arm",       6.45),
]


class AlphaVantageProvider(Provider):
    name = "alpha_vantage"

    def __init__(self, api_key: str = None, transport=None, bucket=None):
        super().__init__(ALPHA_VANTAGE_API_KEY if api_key is None else api_key, transport)
        self._bucket = bucket or bucket_for("alpha_vantage")
        self._yields = TTLCache(default_ttl=TTL["treasury_yields"])

    async def get_treasury_yield(self, maturity: str) -> Optional[float]:
        cached = self._yields.get(maturity)
        if cached is not None:
            return cached

        await self._bucket.wait()
        data = await self._get_json(ALPHA_VANTAGE_URL, params={
            "function": "TREASURY_YIELD",
            "interval": "daily",
            "maturity": maturity,
            "apikey":   self.api_key,
        })
        if "Note" in data or "Information" in data:
            raise ProviderUnavailable(self.name, f"API limit reached: {data.get('Note') or data.get('Information')}")

        for point in data.get("data", []):
            try:
                value = float(point["value"])
            except (ValueError, KeyError):
                continue
            self._yields.set(maturity, value)
            return value
        return None

    async def get_live_market_data(self) -> LiveMarketData:
        if not self.configured:
            raise ProviderUnavailable(self.name, "ALPHA_VANTAGE_API_KEY not set")

        now = datetime.now(timezone.utc).isoformat()
        yields: List[TreasuryYield] = []
        for maturity, term in TREASURY_MATURITIES:
            value = await self.get_treasury_yield(maturity)
            if value is not None:
                yields.append(TreasuryYield(term=term, yield_=value, last_updated=now))

        if not yields:
            raise ProviderUnavailable(self.name, "no treasury yields returned")

        return LiveMarketData(
            cd_rates=[
                CDRate(term=t, rate=r, institution="National Average", last_updated=now)
                for t, r in NATIONAL_CD_AVERAGES
            ],
            treasury_yields=yields,
            mortgage_rates=[
                MortgageRate(type=t, rate=r, last_updated=now)
                for t, r in NATIONAL_MORTGAGE_AVERAGES
            ],
        )
