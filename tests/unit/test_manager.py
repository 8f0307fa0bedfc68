"""Tests for the market news manager on in-memory SQLite."""

import asyncio
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from conftest import FakeClaude
from market_engine.models.news import (
    EconomicIndicatorRecord, MarketDataRecord, MarketNewsDatum, NewsRecord,
)
from market_news.database import MarketNewsContextRow, MarketNewsHistoryRow, MarketNewsStore
from market_news.manager import MarketNewsManager
from market_news.synthesizer import STARTER_TEXT, MarketNewsSynthesizer

TS = datetime(2025, 8, 1, 12, tzinfo=timezone.utc)
RAW = [
    MarketNewsDatum("fred", TS, EconomicIndicatorRecord("FEDFUNDS", "Federal Funds Rate", 5.33, "2025-07-01"), 1.0),
    MarketNewsDatum("brave_search", TS, NewsRecord("Fed holds", "desc", "https://x.test", "fed"), 0.4),
]


class StepClock:
    """Every call is one minute later than the previous one."""

    def __init__(self, start=datetime(2025, 8, 1, 9, 0)):
        self.now = start

    def __call__(self):
        self.now += timedelta(minutes=1)
        return self.now


class FakeAggregator:
    def __init__(self, data=None, error=None):
        self.data  = RAW if data is None else data
        self.error = error
        self.calls = 0

    async def aggregate_market_data(self):
        self.calls += 1
        if self.error:
            raise self.error
        return list(self.data)


class FakeOrchestrator:
    def __init__(self):
        self.invalidated = []

    def invalidate_cache(self, pattern):
        self.invalidated.append(pattern)


@pytest.fixture
def store():
    s = MarketNewsStore("sqlite://")
    s.create_all()
    yield s
    s.close()


def make_manager(store, aggregator=None, client=None, orchestrator=None):
    return MarketNewsManager(
        aggregator=aggregator or FakeAggregator(),
        synthesizer=MarketNewsSynthesizer(client=client or FakeClaude(text="AUTO CONTEXT")),
        store=store,
        orchestrator=orchestrator,
        clock=StepClock(),
    )


def count(store, model):
    with store.session_scope() as session:
        return session.execute(select(func.count()).select_from(model)).scalar_one()


class TestAutoUpdate:

    @pytest.mark.asyncio
    async def test_update_persists_context_and_history(self, store):
        manager = make_manager(store)
        assert await manager.update_market_context("standard") is True

        assert manager.get_market_context("standard") == "AUTO CONTEXT"
        row = manager.get_market_context_row("standard")
        assert row["context_key"] == "auto-standard"
        assert row["data_sources"] == ["fred", "brave_search"]
        assert row["key_events"] == ["Federal Reserve rate at 5.33% - high interest rate environment"]
        assert row["manual_override"] is False

        (entry,) = manager.get_market_context_history("standard")
        assert entry["change_type"] == "auto_update"
        assert entry["changed_by"] is None

    @pytest.mark.asyncio
    async def test_repeated_updates_upsert_one_row(self, store):
        manager = make_manager(store)
        await manager.update_market_context("premium")
        first_id = manager.get_market_context_row("premium")["id"]
        await manager.update_market_context("premium")

        assert manager.get_market_context_row("premium")["id"] == first_id
        assert count(store, MarketNewsContextRow) == 1
        assert count(store, MarketNewsHistoryRow) == 2

    @pytest.mark.asyncio
    async def test_synthesis_failure_keeps_previous_text(self, store):
        manager = make_manager(store)
        await manager.update_market_context("standard")

        manager.synthesizer = MarketNewsSynthesizer(client=FakeClaude(error=RuntimeError("503")))
        assert await manager.update_market_context("standard") is False
        assert manager.get_market_context("standard") == "AUTO CONTEXT"
        assert len(manager.get_market_context_history("standard")) == 1

    @pytest.mark.asyncio
    async def test_aggregator_crash_is_contained(self, store):
        manager = make_manager(store, aggregator=FakeAggregator(error=RuntimeError("network down")))
        assert await manager.update_market_context("standard") is False
        assert manager.get_market_context("standard") == ""

    @pytest.mark.asyncio
    async def test_empty_aggregation_is_no_fresh_data(self, store):
        manager = make_manager(store, aggregator=FakeAggregator(data=[]))
        assert await manager.update_market_context("premium") is False
        assert count(store, MarketNewsContextRow) == 0

    @pytest.mark.asyncio
    async def test_starter_gets_fixed_text(self, store):
        manager = make_manager(store, aggregator=FakeAggregator(data=[]))
        assert await manager.update_market_context("starter") is True
        assert manager.get_market_context("starter") == STARTER_TEXT

    @pytest.mark.asyncio
    async def test_update_all_tiers_reports_each_tier(self, store):
        manager = make_manager(store)
        assert await manager.update_all_tiers() == {"starter": True, "standard": True, "premium": True}

    @pytest.mark.asyncio
    async def test_unknown_tier_raises(self, store):
        manager = make_manager(store)
        with pytest.raises(ValueError):
            await manager.update_market_context("gold")


class TestManualOverride:

    @pytest.mark.asyncio
    async def test_manual_edit_wins_until_next_auto_update(self, store):
        manager = make_manager(store)
        await manager.update_market_context("standard")
        await manager.update_market_context_manual("standard", "ADMIN TEXT", "ops@finsight.test")

        assert manager.get_market_context("standard") == "ADMIN TEXT"
        assert count(store, MarketNewsContextRow) == 2

        await manager.update_market_context("standard")
        assert manager.get_market_context("standard") == "AUTO CONTEXT"

    @pytest.mark.asyncio
    async def test_manual_row_records_editor_and_history(self, store):
        manager = make_manager(store)
        row = await manager.update_market_context_manual("premium", "ADMIN TEXT", "alex", reason="Fed surprise")
        assert row["context_key"] == "manual-premium"

        stored = manager.get_market_context_row("premium")
        assert stored["manual_override"] is True
        assert stored["last_edited_by"] == "alex"
        assert stored["data_sources"] == [] and stored["key_events"] == []

        (entry,) = manager.get_market_context_history("premium")
        assert entry["change_type"] == "manual_edit"
        assert entry["changed_by"] == "alex"
        assert entry["change_reason"] == "Fed surprise"

    @pytest.mark.asyncio
    async def test_manual_edit_invalidates_cached_context(self, store):
        orchestrator = FakeOrchestrator()
        manager = make_manager(store, orchestrator=orchestrator)
        await manager.update_market_context_manual("standard", "ADMIN TEXT", "alex")
        assert orchestrator.invalidated == ["market_context_standard"]

    @pytest.mark.asyncio
    async def test_tiers_do_not_leak(self, store):
        manager = make_manager(store)
        await manager.update_market_context_manual("standard", "STANDARD ONLY", "alex")
        assert manager.get_market_context("premium") == ""
        assert manager.get_market_context_history("premium") == []


class TestHistory:

    @pytest.mark.asyncio
    async def test_history_is_newest_first_and_capped(self, store):
        manager = make_manager(store)
        for i in range(55):
            await manager.update_market_context_manual("standard", f"edit {i}", "alex")

        history = manager.get_market_context_history("standard")
        assert len(history) == 50
        assert history[0]["context_text"] == "edit 54"
        assert history[-1]["context_text"] == "edit 5"

    @pytest.mark.asyncio
    async def test_history_spans_auto_and_manual_rows(self, store):
        manager = make_manager(store)
        await manager.update_market_context("standard")
        await manager.update_market_context_manual("standard", "ADMIN TEXT", "alex")
        types = [h["change_type"] for h in manager.get_market_context_history("standard")]
        assert types == ["manual_edit", "auto_update"]


class TestRefreshCycle:

    @pytest.mark.asyncio
    async def test_update_all_tiers_aggregates_once(self, store):
        aggregator = FakeAggregator()
        manager = make_manager(store, aggregator=aggregator)
        await manager.update_all_tiers()
        assert aggregator.calls == 1
        assert manager.get_market_context("standard") == "AUTO CONTEXT"
        assert manager.get_market_context("premium") == "AUTO CONTEXT"

    @pytest.mark.asyncio
    async def test_starter_never_aggregates(self, store):
        aggregator = FakeAggregator()
        manager = make_manager(store, aggregator=aggregator)
        assert await manager.update_market_context("starter") is True
        assert aggregator.calls == 0

    @pytest.mark.asyncio
    async def test_failed_aggregation_only_fails_paid_tiers(self, store):
        aggregator = FakeAggregator(error=RuntimeError("network down"))
        manager = make_manager(store, aggregator=aggregator)
        results = await manager.update_all_tiers()
        assert results == {"starter": True, "standard": False, "premium": False}
        assert aggregator.calls == 1

    @pytest.mark.asyncio
    async def test_shared_data_is_filtered_per_tier(self, store):
        spy = MarketNewsDatum("polygon", TS, MarketDataRecord("SPY", 500.0, 510.0, 2.0), 0.2)
        manager = make_manager(store, aggregator=FakeAggregator(data=RAW + [spy]))
        await manager.update_all_tiers()
        assert manager.get_market_context_row("standard")["data_sources"] == ["fred", "brave_search"]
        assert manager.get_market_context_row("premium")["data_sources"] == ["fred", "brave_search", "polygon"]


class TestEventLoop:

    @pytest.mark.asyncio
    async def test_writes_run_off_the_loop_thread(self, store, monkeypatch):
        threads = []
        session_scope = store.session_scope

        @contextmanager
        def recording_scope():
            threads.append(threading.get_ident())
            with session_scope() as session:
                yield session

        monkeypatch.setattr(store, "session_scope", recording_scope)
        manager = make_manager(store)
        await manager.update_market_context("standard")
        await manager.update_market_context_manual("premium", "ADMIN TEXT", "alex")

        assert len(threads) == 2
        assert threading.get_ident() not in threads

    @pytest.mark.asyncio
    async def test_slow_database_does_not_stall_other_tasks(self, store, monkeypatch):
        session_scope = store.session_scope

        @contextmanager
        def slow_scope():
            time.sleep(0.3)
            with session_scope() as session:
                yield session

        monkeypatch.setattr(store, "session_scope", slow_scope)
        manager = make_manager(store)
        ticks = 0

        async def ticker():
            nonlocal ticks
            while True:
                await asyncio.sleep(0.01)
                ticks += 1

        task = asyncio.create_task(ticker())
        await manager.update_market_context_manual("standard", "ADMIN TEXT", "alex")
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert ticks >= 10
