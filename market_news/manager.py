"""
Finsight — Market News Manager
───────────────────────────────
Runs aggregate → synthesize → persist per tier and serves the stored
narrative back to the chat handler and the admin routes.

  update_market_context(tier)          auto row + auto_update history entry
  update_market_context_manual(...)    manual row + manual_edit history entry
  get_market_context(tier)             newest active row for the tier, any origin
  get_market_context_history(tier)     ≤50 history rows, newest first

Auto and manual rows coexist. Serving picks whichever was written last, so
a manual edit wins until the next auto refresh overtakes its timestamp.

Failures (provider, LLM, database) are logged and reported as False; the
previous row keeps being served. Only an invalid tier raises.

One scheduled cycle aggregates once and synthesizes every tier from that
list. Starter never aggregates: its narrative is fixed text.

Session work is blocking SQLAlchemy, so async writers hand it to the
default executor. The read helpers stay synchronous; the API serves them
from plain `def` routes, which FastAPI runs in its threadpool.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from sqlalchemy import select

from market_engine.models.market_data import ALL_TIERS, UserTier
from market_engine.models.news import MarketNewsDatum
from market_news.aggregator import MarketNewsAggregator
from market_news.database import (
    CHANGE_AUTO_UPDATE, CHANGE_MANUAL_EDIT, ORIGIN_AUTO, ORIGIN_MANUAL,
    MarketNewsHistoryRow, MarketNewsStore, active_contexts, upsert_context, utcnow,
)
from market_news.synthesizer import MarketNewsSynthesizer, SynthesisFailure

log = logging.getLogger("fs.news.manager")

HISTORY_LIMIT = 50


class MarketNewsManager:

    def __init__(self, aggregator: MarketNewsAggregator = None,
                 synthesizer: MarketNewsSynthesizer = None,
                 store: MarketNewsStore = None,
                 orchestrator=None,
                 clock: Callable = utcnow):
        self.aggregator   = aggregator or MarketNewsAggregator()
        self.synthesizer  = synthesizer or MarketNewsSynthesizer()
        self.store        = store or MarketNewsStore()
        self.orchestrator = orchestrator
        self._clock       = clock

    # ── Writes ────────────────────────────────────────────────
    async def update_market_context(self, tier, raw_data: Optional[List[MarketNewsDatum]] = None) -> bool:
        """
        Synthesize and store the auto narrative for one tier. `raw_data` lets a
        caller that already aggregated this cycle share the result.
        """
        tier = UserTier.coerce(tier)
        try:
            if tier is UserTier.STARTER:
                raw = []
            elif raw_data is not None:
                raw = raw_data
            else:
                raw = await self.aggregator.aggregate_market_data()
            if not raw and tier is not UserTier.STARTER:
                log.warning(f"{tier.value}: no fresh market data — keeping stored context")
                return False
            context = await self.synthesizer.synthesize_market_context(raw, tier)
        except SynthesisFailure as e:
            log.warning(f"{tier.value}: synthesis failed — keeping stored context ({e})")
            return False
        except Exception as e:
            log.error(f"{tier.value}: market context update failed: {e}")
            return False

        try:
            await self._run(lambda: self._save(
                tier, ORIGIN_AUTO, context.context_text,
                data_sources=context.data_sources,
                key_events=context.key_events,
                raw_data=context.raw_data,
                manual_override=False,
                edited_by=None,
                change_type=CHANGE_AUTO_UPDATE,
            ))
        except Exception as e:
            log.error(f"{tier.value}: could not persist market context: {e}")
            return False

        log.info(f"Market context updated for tier: {tier.value}")
        return True

    async def update_market_context_manual(self, tier, text: str, admin_user: str,
                                           reason: Optional[str] = None) -> dict:
        tier = UserTier.coerce(tier)
        row = await self._run(lambda: self._save(
            tier, ORIGIN_MANUAL, text,
            data_sources=[],
            key_events=[],
            raw_data=None,
            manual_override=True,
            edited_by=admin_user,
            change_type=CHANGE_MANUAL_EDIT,
            reason=reason,
        ))
        log.info(f"Manual market context for {tier.value} saved by {admin_user}")

        if self.orchestrator is not None:
            self.orchestrator.invalidate_cache(f"market_context_{tier.value}")
        return row

    async def update_all_tiers(self) -> dict:
        try:
            raw = await self.aggregator.aggregate_market_data()
        except Exception as e:
            log.error(f"Market news aggregation failed: {e}")
            raw = []

        results = {}
        for tier in ALL_TIERS:
            results[tier.value] = await self.update_market_context(tier, raw)
        log.info(f"Market news refresh: {results}")
        return results

    @staticmethod
    async def _run(fn):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn)

    def _save(self, tier: UserTier, origin: str, text: str, *, data_sources, key_events,
              raw_data, manual_override: bool, edited_by, change_type: str,
              reason: Optional[str] = None) -> dict:
        now = self._clock()
        with self.store.session_scope() as session:
            context_id = upsert_context(session, {
                "tier":            tier.value,
                "origin":          origin,
                "context_text":    text,
                "raw_data":        raw_data,
                "data_sources":    list(data_sources),
                "key_events":      list(key_events),
                "available_tiers": [tier.value],
                "is_active":       True,
                "manual_override": manual_override,
                "last_edited_by":  edited_by,
                "last_update":     now,
                "created_at":      now,
            })
            session.add(MarketNewsHistoryRow(
                context_id=context_id,
                context_text=text,
                data_sources=list(data_sources),
                key_events=list(key_events),
                change_type=change_type,
                change_reason=reason,
                changed_by=edited_by,
                created_at=now,
            ))
            session.flush()
            return {
                "id": context_id, "context_key": f"{origin}-{tier.value}",
                "tier": tier.value, "last_update": now.isoformat(),
            }

    # ── Reads ─────────────────────────────────────────────────
    def get_market_context(self, tier) -> str:
        tier = UserTier.coerce(tier)
        with self.store.session_scope() as session:
            for row in active_contexts(session):
                if tier.value in (row.available_tiers or []):
                    return row.context_text
        return ""

    def get_market_context_row(self, tier) -> Optional[dict]:
        tier = UserTier.coerce(tier)
        with self.store.session_scope() as session:
            for row in active_contexts(session):
                if tier.value in (row.available_tiers or []):
                    return row.to_dict()
        return None

    def get_market_context_history(self, tier) -> List[dict]:
        tier = UserTier.coerce(tier)
        with self.store.session_scope() as session:
            context_ids = [row.id for row in active_contexts(session)
                           if tier.value in (row.available_tiers or [])]
            if not context_ids:
                return []
            stmt = (
                select(MarketNewsHistoryRow)
                .where(MarketNewsHistoryRow.context_id.in_(context_ids))
                .order_by(MarketNewsHistoryRow.created_at.desc(), MarketNewsHistoryRow.id.desc())
                .limit(HISTORY_LIMIT)
            )
            return [h.to_dict() for h in session.execute(stmt).scalars()]
