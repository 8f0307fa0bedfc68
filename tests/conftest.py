"""Shared fakes and fixtures for the market context tests."""

import time
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import List

import pytest

from market_engine.models.market_data import (
    CDRate, EconomicIndicators, LiveMarketData, MarketDataPoint, MortgageRate,
    SearchResult, TreasuryYield,
)
from market_engine.models.news import MarketDataRecord
from market_providers.base import ProviderUnavailable

NOW_ISO = "2025-08-01T05:57:37+00:00"


def point(value: float, date: str = "2025-07-01") -> MarketDataPoint:
    return MarketDataPoint(value=value, date=date, source="FRED", last_updated=NOW_ISO)


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_754_027_857.0):   # 2025-08-01 05:57:37 UTC
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeFRED:
    configured = True

    def __init__(self, fed=5.25, cpi=3.1, mortgage=6.72, apr=24.59, unemployment=None,
                 series=None, fail=False):
        self.fed, self.cpi, self.mortgage, self.apr = fed, cpi, mortgage, apr
        self.unemployment = unemployment
        self.series = series if series is not None else {
            "CPIAUCSL": 321.5, "FEDFUNDS": fed, "MORTGAGE30US": mortgage, "DGS10": 4.2,
        }
        self.fail  = fail
        self.calls = 0
        self.series_calls: List[str] = []

    async def get_economic_indicators(self) -> EconomicIndicators:
        self.calls += 1
        if self.fail:
            raise ProviderUnavailable("fred", "FRED API error")
        return EconomicIndicators(
            cpi=point(self.cpi),
            fed_rate=point(self.fed),
            mortgage_rate=point(self.mortgage),
            credit_card_apr=point(self.apr),
            unemployment=point(self.unemployment) if self.unemployment is not None else None,
        )

    async def get_data_point(self, series_id: str) -> MarketDataPoint:
        self.series_calls.append(series_id)
        if self.fail or series_id not in self.series:
            raise ProviderUnavailable("fred", f"{series_id}: no observations")
        return point(self.series[series_id])


class FakeAlphaVantage:
    configured = True

    def __init__(self, cd_rates=(("3-month", 5.25), ("6-month", 5.35)), fail=False):
        self.cd_rates = cd_rates
        self.fail  = fail
        self.calls = 0

    async def get_live_market_data(self) -> LiveMarketData:
        self.calls += 1
        if self.fail:
            raise ProviderUnavailable("alpha_vantage", "API limit reached")
        return LiveMarketData(
            cd_rates=[CDRate(t, r, "National Average", NOW_ISO) for t, r in self.cd_rates],
            treasury_yields=[TreasuryYield("1-month", 5.12, NOW_ISO),
                             TreasuryYield("10-year", 4.25, NOW_ISO)],
            mortgage_rates=[MortgageRate("30-year-fixed", 6.85, NOW_ISO),
                            MortgageRate("15-year-fixed", 6.25, NOW_ISO)],
        )


class FakeSearch:
    """Records when each call started so spacing can be asserted."""

    configured = True

    def __init__(self, results=None, fail=False):
        self.results = results if results is not None else [
            SearchResult("Fed holds interest rate steady", "The Fed kept its rate unchanged.",
                         "https://example.com/fed", "Brave", 1.0),
            SearchResult("Mortgage rates dip", "Rates on 30-year loans fell.",
                         "https://example.com/mortgage", "Brave", 0.9),
        ]
        self.fail = fail
        self.calls: List[tuple] = []   # (monotonic time, query, max_results)

    async def search(self, query, max_results=10, time_range="day", **kwargs):
        self.calls.append((time.monotonic(), query, max_results))
        if self.fail:
            raise ProviderUnavailable("search", "rate limit reached")
        return list(self.results[:max_results])


class FakePolygon:
    configured = True

    def __init__(self, moves=(("SPY", 500.0, 510.0), ("QQQ", 400.0, 398.0)), fail=False):
        self.moves = moves
        self.fail  = fail
        self.calls = 0

    async def get_market_snapshot(self, tickers=None, limiter=None):
        out = []
        for ticker, o, c in self.moves:
            if limiter is not None:
                await limiter.wait()
            self.calls += 1
            if self.fail:
                raise ProviderUnavailable("polygon", "HTTP 500")
            pct = round((c - o) / o * 100, 2)
            out.append((MarketDataRecord(ticker, o, c, pct),
                        datetime(2025, 7, 31, 20, tzinfo=timezone.utc)))
        return out


class NoWaitLimiter:
    def __init__(self):
        self.waits = 0

    async def wait(self):
        self.waits += 1


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fred():
    return FakeFRED()


@pytest.fixture
def alpha_vantage():
    return FakeAlphaVantage()


@pytest.fixture
def search():
    return FakeSearch()


@pytest.fixture
def polygon():
    return FakePolygon()


class FakeMessages:
    def __init__(self, text="ECONOMIC INDICATORS:\nRates are high.", error=None):
        self.text  = text
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return SimpleNamespace(content=[SimpleNamespace(text=self.text)])


class FakeClaude:
    """Stands in for anthropic.Anthropic: only messages.create is used."""

    def __init__(self, **kwargs):
        self.messages = FakeMessages(**kwargs)
