import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from market_engine.api.market_endpoint import router as market_router
from market_engine.orchestrator.data_orchestrator import DataOrchestrator
from market_engine.orchestrator.rate_limiter import ProviderLimiters
from market_engine.orchestrator.scheduler import start_scheduler, stop_scheduler
from market_news import MarketNewsAggregator, MarketNewsManager, MarketNewsStore, MarketNewsSynthesizer
from market_providers import AlphaVantageProvider, FREDProvider, PolygonProvider, SearchProvider

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
log = logging.getLogger("fs.app")

ENABLE_SCHEDULER = os.environ.get("ENABLE_SCHEDULER", "true").lower() in ("1", "true", "yes")


def build_services(database_url: str = None) -> dict:
    """One provider set and one limiter set for the whole process."""
    limiters      = ProviderLimiters()
    fred          = FREDProvider()
    alpha_vantage = AlphaVantageProvider()
    search        = SearchProvider()

    orchestrator = DataOrchestrator(fred=fred, alpha_vantage=alpha_vantage,
                                    search=search, limiters=limiters)
    aggregator = MarketNewsAggregator(fred=fred, search=search, polygon=PolygonProvider(),
                                      alpha_vantage=alpha_vantage, limiters=limiters)
    store = MarketNewsStore(database_url)
    manager = MarketNewsManager(aggregator=aggregator, synthesizer=MarketNewsSynthesizer(),
                                store=store, orchestrator=orchestrator)
    return {"orchestrator": orchestrator, "news_manager": manager, "store": store}


@asynccontextmanager
async def lifespan(app: FastAPI):
    services = build_services()
    services["store"].create_all()
    app.state.orchestrator = services["orchestrator"]
    app.state.news_manager = services["news_manager"]

    if ENABLE_SCHEDULER:
        start_scheduler(app.state.orchestrator, app.state.news_manager)
    else:
        log.info("Scheduler disabled (ENABLE_SCHEDULER=false)")
    yield
    stop_scheduler()
    services["store"].close()


app = FastAPI(
    title="Finsight Market Context API",
    description="Tier-aware market context for the Finsight chat assistant.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(market_router)


@app.get("/")
async def root():
    return {"status": "ok", "docs": "/docs", "api": "/api/market-context?tier=standard"}


@app.get("/health")
async def health():
    stats = app.state.orchestrator.get_cache_stats()
    return {
        "status": "healthy",
        "market_context_entries": stats["marketContextCache"]["size"],
        "timestamp": int(time.time()),
    }


if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("app:app", host="0.0.0.0", port=port, reload=False, log_level="info")
