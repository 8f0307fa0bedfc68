"""
Finsight — Market Context Scheduler
════════════════════════════════════

Two jobs, both on New York time (EST/EDT handled by APScheduler):

  0 * * * *      CONTEXT REFRESH
                 Rebuild every (tier × demo) market context entry so chat
                 requests keep hitting a warm cache. Logs cache stats after.

  30 */4 * * *   MARKET NEWS SYNTHESIS
                 Aggregate → synthesize → persist for every tier. Heavier:
                 search quota, Polygon quota and one LLM call per paid tier.

A job that is still running when its next slot comes up is skipped
(max_instances=1); a slot missed by less than 5 minutes still fires.
"""

import logging
import time

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from market_engine.cache.ttl_config import CONTEXT_REFRESH_CRON, NEWS_SYNTH_CRON, REFRESH_TZ

log = logging.getLogger("fs.scheduler")

_scheduler  = None
_is_running = False

GRACE_S = 300   # 5-minute misfire grace window


# ─────────────────────────────────────────────────────────────
# JOBS
# ─────────────────────────────────────────────────────────────

async def job_refresh_context(orchestrator):
    t0 = time.monotonic()
    try:
        await orchestrator.force_refresh_all_context()
    except Exception as e:
        log.error(f"[context_refresh] failed: {e}")
        return
    stats = orchestrator.get_cache_stats()
    elapsed = round(time.monotonic() - t0, 1)
    log.info(f"[context_refresh] Done in {elapsed}s — cache stats: {stats}")


async def job_synthesize_news(manager):
    t0 = time.monotonic()
    results = await manager.update_all_tiers()
    ok = sum(1 for v in results.values() if v)
    elapsed = round(time.monotonic() - t0, 1)
    log.info(f"[news_synthesis] Done — {ok}/{len(results)} tiers updated  {elapsed}s")


# (func, cron, job_id, display_name)
def _jobs(orchestrator, manager):
    jobs = [
        (job_refresh_context, orchestrator, CONTEXT_REFRESH_CRON, "context_refresh",
         "Hourly  Market context cache warm"),
    ]
    if manager is not None:
        jobs.append((job_synthesize_news, manager, NEWS_SYNTH_CRON, "news_synthesis",
                     "Every 4h  Market news synthesis"))
    return jobs


# ─────────────────────────────────────────────────────────────
# SCHEDULER CONTROL
# ─────────────────────────────────────────────────────────────

def start_scheduler(orchestrator, manager=None):
    global _scheduler, _is_running
    if _is_running:
        log.warning("Scheduler already running — ignoring start call")
        return

    _scheduler = AsyncIOScheduler(timezone=REFRESH_TZ)

    log.info("Market context scheduler — registering jobs:")
    jobs = _jobs(orchestrator, manager)
    for (func, target, cron, job_id, name) in jobs:
        _scheduler.add_job(
            func,
            CronTrigger.from_crontab(cron, timezone=REFRESH_TZ),
            args                = [target],
            id                  = job_id,
            name                = name,
            max_instances       = 1,
            misfire_grace_time  = GRACE_S,
            replace_existing    = True,
        )
        log.info(f"  [{cron:>12}]  {name}")

    _scheduler.start()
    _is_running = True
    log.info(f"Scheduler live — {len(jobs)} jobs registered ({REFRESH_TZ})")


def stop_scheduler():
    global _scheduler, _is_running
    if _scheduler and _is_running:
        _scheduler.shutdown(wait=False)
        _is_running = False
        log.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    if not _scheduler or not _is_running:
        return {"running": False, "jobs": []}

    jobs = []
    for job in _scheduler.get_jobs():
        nxt = job.next_run_time
        jobs.append({
            "id":       job.id,
            "name":     job.name,
            "next_run": nxt.isoformat() if nxt else None,
        })
    jobs.sort(key=lambda j: j["next_run"] or "9999")
    return {"running": True, "job_count": len(jobs), "jobs": jobs}
