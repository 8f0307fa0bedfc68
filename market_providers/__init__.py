"""
Finsight Provider Adapters
───────────────────────────
Thin typed wrappers over FRED, Alpha Vantage, Polygon and web search.

    from market_providers import FREDProvider
    indicators = await FREDProvider().get_economic_indicators()
"""

from .base import Provider, ProviderUnavailable
from .fred import FREDProvider
from .alpha_vantage import AlphaVantageProvider
from .polygon import PolygonProvider
from .search import SearchProvider

__all__ = [
    "Provider", "ProviderUnavailable", "FREDProvider", "AlphaVantageProvider",
    "PolygonProvider", "SearchProvider",
]
