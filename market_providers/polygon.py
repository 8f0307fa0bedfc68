"""
Finsight — Polygon Provider
────────────────────────────
Previous-day aggregates for broad-market ETFs (premium market news).

Free tier: 5 requests/minute. Throttling is the caller's job — the
aggregator owns a WindowLimiter and waits on it before every call here.
"""

import logging
import os
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from market_engine.models.news import MarketDataRecord
from market_providers.base import Provider, ProviderUnavailable

log = logging.getLogger("fs.providers.polygon")

POLYGON_API_KEY  = os.environ.get("POLYGON_API_KEY", "")
POLYGON_PREV_URL = "https://api.polygon.io/v2/aggs/ticker/{ticker}/prev"

# S&P 500, total market, Dow, Nasdaq-100
MARKET_TICKERS = ["SPY", "VTI", "DIA", "QQQ"]


class PolygonProvider(Provider):
    name = "polygon"

    def __init__(self, api_key: str = None, transport=None):
        super().__init__(POLYGON_API_KEY if api_key is None else api_key, transport)

    async def get_previous_close(self, ticker: str) -> Tuple[MarketDataRecord, datetime]:
        """Previous session's bar for `ticker` and the bar's timestamp."""
        if not self.configured:
            raise ProviderUnavailable(self.name, "POLYGON_API_KEY not set")

        data = await self._get_json(
            POLYGON_PREV_URL.format(ticker=ticker),
            params={"adjusted": "true", "apiKey": self.api_key},
        )
        results = data.get("results") or []
        if not results:
            raise ProviderUnavailable(self.name, f"{ticker}: no aggregate returned")

        bar = results[0]
        try:
            o, c = float(bar["o"]), float(bar["c"])
        except (KeyError, TypeError, ValueError):
            raise ProviderUnavailable(self.name, f"{ticker}: malformed aggregate")

        pct = round((c - o) / o * 100, 2) if o else 0.0
        ts  = _bar_time(bar.get("t"))
        return MarketDataRecord(
            ticker=ticker, open=o, close=c, percent_change=pct, volume=bar.get("v"),
        ), ts

    async def get_market_snapshot(self, tickers: List[str] = None,
                                  limiter=None) -> List[Tuple[MarketDataRecord, datetime]]:
        """Previous close for each ticker; failures are logged and skipped."""
        out = []
        for ticker in tickers or MARKET_TICKERS:
            if limiter is not None:
                await limiter.wait()
            try:
                out.append(await self.get_previous_close(ticker))
            except ProviderUnavailable as e:
                log.warning(f"{e} — skipped")
        if not out:
            raise ProviderUnavailable(self.name, "no tickers returned data")
        return out


def _bar_time(ms: Optional[int]) -> datetime:
    if ms is None:
        return datetime.now(timezone.utc)
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
