"""Route tests: the router mounted on a bare app wired to fake providers."""

from datetime import datetime, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import FakeAlphaVantage, FakeClaude, FakeFRED, FakeSearch, NoWaitLimiter
from market_engine.api.market_endpoint import router
from market_engine.models.news import EconomicIndicatorRecord, MarketNewsDatum
from market_engine.orchestrator.data_orchestrator import DataOrchestrator
from market_engine.orchestrator.rate_limiter import ProviderLimiters
from market_news.database import MarketNewsStore
from market_news.manager import MarketNewsManager
from market_news.synthesizer import MarketNewsSynthesizer


class OneItemAggregator:
    async def aggregate_market_data(self):
        return [MarketNewsDatum("fred", datetime(2025, 8, 1, tzinfo=timezone.utc),
                                EconomicIndicatorRecord("FEDFUNDS", "Federal Funds Rate", 5.33, "2025-07-01"),
                                1.0)]


@pytest.fixture
def client():
    store = MarketNewsStore("sqlite://")
    store.create_all()
    orchestrator = DataOrchestrator(
        fred=FakeFRED(), alpha_vantage=FakeAlphaVantage(), search=FakeSearch(),
        limiters=ProviderLimiters(search=NoWaitLimiter(), polygon=NoWaitLimiter()),
    )
    manager = MarketNewsManager(
        aggregator=OneItemAggregator(),
        synthesizer=MarketNewsSynthesizer(client=FakeClaude(text="SYNTHESIZED")),
        store=store,
        orchestrator=orchestrator,
    )
    app = FastAPI()
    app.include_router(router)
    app.state.orchestrator = orchestrator
    app.state.news_manager = manager
    with TestClient(app) as c:
        yield c
    store.close()


class TestMarketContextRoutes:

    def test_market_context(self, client):
        r = client.get("/api/market-context", params={"tier": "standard"})
        assert r.status_code == 200
        body = r.json()
        assert body["tier"] == "standard"
        assert "ECONOMIC INDICATORS:" in body["context"]
        assert "LIVE MARKET DATA:" not in body["context"]

    def test_unknown_tier_is_400(self, client):
        r = client.get("/api/market-context", params={"tier": "gold"})
        assert r.status_code == 400

    def test_search_denied_for_starter(self, client):
        r = client.get("/api/search-context", params={"q": "fed rate", "tier": "starter"})
        assert r.json() == {"query": "fed rate", "status": "denied", "context": None}

    def test_search_ok_for_premium(self, client):
        r = client.get("/api/search-context", params={"q": "fed rate", "tier": "premium"})
        body = r.json()
        assert body["status"] == "ok"
        assert body["context"]["summary"].startswith('Latest real-time information for "fed rate":')

    def test_tier_access(self, client):
        body = client.get("/api/market-context/tier-access", params={"tier": "starter"}).json()
        assert body["tier_info"]["current_tier"] == "starter"
        assert body["upgrade_hints"]

    def test_cache_ops(self, client):
        client.get("/api/market-context", params={"tier": "premium"})
        stats = client.get("/api/cache/stats").json()
        assert stats["marketContextCache"]["keys"] == ["market_context_premium_false"]

        r = client.post("/api/cache/invalidate", params={"pattern": "premium"})
        assert r.json()["stats"]["marketContextCache"]["size"] == 0

        r = client.post("/api/cache/refresh")
        assert r.json()["stats"]["marketContextCache"]["size"] == 6


class TestMarketNewsAdminRoutes:

    def test_refresh_then_read(self, client):
        r = client.post("/api/admin/market-news/standard/refresh")
        assert r.json() == {"ok": True, "tier": "standard"}
        body = client.get("/api/admin/market-news/standard").json()
        assert body["context"] == "SYNTHESIZED"
        assert body["row"]["origin"] == "auto"

    def test_manual_override_and_history(self, client):
        r = client.put("/api/admin/market-news/premium",
                       json={"context_text": "ADMIN", "admin_user": "alex", "reason": "CPI beat"})
        assert r.status_code == 200
        assert client.get("/api/admin/market-news/premium").json()["context"] == "ADMIN"

        history = client.get("/api/admin/market-news/premium/history").json()
        assert history["count"] == 1
        assert history["history"][0]["change_reason"] == "CPI beat"

    def test_override_requires_admin_user(self, client):
        r = client.put("/api/admin/market-news/premium", json={"context_text": "ADMIN"})
        assert r.status_code == 422

    def test_missing_manager_is_503(self, client):
        client.app.state.news_manager = None
        assert client.get("/api/admin/market-news/standard").status_code == 503


def test_scheduler_status_when_stopped(client):
    assert client.get("/api/scheduler").json()["running"] is False
