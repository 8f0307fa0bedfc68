"""
Finsight — TTL Configuration
─────────────────────────────
Single source of truth for all cache durations.
Organised by data type — how fast the real world changes.
"""

# ── Per data-type TTL (seconds) ───────────────────────────────

TTL = {
    # Served per chat request, refreshed hourly by the scheduler
    "market_context":   3600,           # 1 hour
    "search":           30 * 60,        # 30 minutes (Brave quota)

    # Adapter-internal caches
    "treasury_yields":  12 * 3600,      # daily series, Alpha Vantage 25/day
}

# ── Rate limits ───────────────────────────────────────────────
SEARCH_MIN_INTERVAL_S = 1.1     # Brave: 1 req/s on the free plan, plus margin
POLYGON_MAX_CALLS     = 5       # Polygon free tier: 5 req/min
POLYGON_WINDOW_S      = 60

# ── Schedules (cron, America/New_York) ────────────────────────
REFRESH_TZ           = "America/New_York"
CONTEXT_REFRESH_CRON = "0 * * * *"      # hourly cache warm
NEWS_SYNTH_CRON      = "30 */4 * * *"   # LLM synthesis every 4 hours
