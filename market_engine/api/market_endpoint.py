"""
Finsight — Market Context API
──────────────────────────────
Diagnostic, ops and admin routes over the orchestrator and the market
news manager. The chat handler calls the orchestrator in-process; these
routes exist for monitoring, cache ops and the admin override screen.

  GET  /api/market-context?tier=&demo=            context string
  GET  /api/search-context?q=&tier=&demo=         search context or null
  GET  /api/market-context/tier-access?tier=      data + upgrade hints
  GET  /api/cache/stats
  POST /api/cache/invalidate?pattern=
  POST /api/cache/refresh
  GET  /api/admin/market-news/{tier}              stored narrative
  PUT  /api/admin/market-news/{tier}              manual override
  POST /api/admin/market-news/{tier}/refresh      run the pipeline now
  GET  /api/admin/market-news/{tier}/history      audit log
  GET  /api/scheduler

An unknown tier is a 400. Routes that read the market news tables are
plain `def` so the blocking session work runs in the threadpool.
"""

import logging
import time
from typing import Optional

from fastapi import APIRouter, Body, HTTPException, Query, Request

from market_engine.models.market_data import UserTier
from market_engine.orchestrator.scheduler import get_scheduler_status

log = logging.getLogger("fs.api.market")

router = APIRouter()


def _tier(value: str) -> UserTier:
    try:
        return UserTier.coerce(value)
    except ValueError as e:
        raise HTTPException(400, str(e))


def _orchestrator(request: Request):
    return request.app.state.orchestrator


def _manager(request: Request):
    manager = getattr(request.app.state, "news_manager", None)
    if manager is None:
        raise HTTPException(503, "Market news manager not available")
    return manager


# ── Orchestrator ──────────────────────────────────────────────

@router.get("/api/market-context", tags=["Market Context"])
async def market_context(
    request: Request,
    tier: str = Query(..., description="starter | standard | premium"),
    demo: bool = Query(False),
):
    t = _tier(tier)
    text = await _orchestrator(request).get_market_context_summary(t, demo)
    return {"tier": t.value, "demo": demo, "context": text, "timestamp": int(time.time())}


@router.get("/api/search-context", tags=["Market Context"])
async def search_context(
    request: Request,
    q: str = Query(..., description="Financial question to search for"),
    tier: str = Query(...),
    demo: bool = Query(False),
):
    t = _tier(tier)
    outcome = await _orchestrator(request).get_search_outcome(q, t, demo)
    return {
        "query":   q,
        "status":  outcome.status.value,
        "context": outcome.context.to_dict() if outcome.ok else None,
    }


@router.get("/api/market-context/tier-access", tags=["Market Context"])
async def tier_access(request: Request, tier: str = Query(...), demo: bool = Query(False)):
    return await _orchestrator(request).build_tier_aware_context(_tier(tier), demo)


@router.get("/api/cache/stats", tags=["Cache"])
async def cache_stats(request: Request):
    return _orchestrator(request).get_cache_stats()


@router.post("/api/cache/invalidate", tags=["Cache"])
async def cache_invalidate(request: Request, pattern: str = Query(..., min_length=1)):
    orchestrator = _orchestrator(request)
    orchestrator.invalidate_cache(pattern)
    return {"ok": True, "pattern": pattern, "stats": orchestrator.get_cache_stats()}


@router.post("/api/cache/refresh", tags=["Cache"])
async def cache_refresh(request: Request):
    orchestrator = _orchestrator(request)
    await orchestrator.force_refresh_all_context()
    return {"ok": True, "stats": orchestrator.get_cache_stats()}


# ── Market news admin ─────────────────────────────────────────

@router.get("/api/admin/market-news/{tier}", tags=["Market News"])
def market_news(request: Request, tier: str):
    t = _tier(tier)
    manager = _manager(request)
    return {"tier": t.value, "context": manager.get_market_context(t),
            "row": manager.get_market_context_row(t)}


@router.put("/api/admin/market-news/{tier}", tags=["Market News"])
async def market_news_override(
    request: Request,
    tier: str,
    context_text: str = Body(..., min_length=1),
    admin_user: str = Body(..., min_length=1),
    reason: Optional[str] = Body(None),
):
    t = _tier(tier)
    row = await _manager(request).update_market_context_manual(t, context_text, admin_user, reason)
    return {"ok": True, "row": row}


@router.post("/api/admin/market-news/{tier}/refresh", tags=["Market News"])
async def market_news_refresh(request: Request, tier: str):
    t = _tier(tier)
    updated = await _manager(request).update_market_context(t)
    return {"ok": updated, "tier": t.value}


@router.get("/api/admin/market-news/{tier}/history", tags=["Market News"])
def market_news_history(request: Request, tier: str):
    t = _tier(tier)
    history = _manager(request).get_market_context_history(t)
    return {"tier": t.value, "count": len(history), "history": history}


@router.get("/api/scheduler", tags=["Ops"])
async def scheduler_status():
    return get_scheduler_status()
