"""
Finsight Market News
─────────────────────
Aggregator → Synthesizer → Manager pipeline behind the LLM-written market
narrative, plus its SQLAlchemy persistence.
"""

from .aggregator import MarketNewsAggregator
from .synthesizer import MarketNewsContext, MarketNewsSynthesizer, SynthesisFailure
from .database import MarketNewsStore
from .manager import MarketNewsManager

__all__ = [
    "MarketNewsAggregator", "MarketNewsContext", "MarketNewsSynthesizer",
    "SynthesisFailure", "MarketNewsStore", "MarketNewsManager",
]
