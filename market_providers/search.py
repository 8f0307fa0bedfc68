"""
Finsight — Search Provider
───────────────────────────
Real-time web search for financial questions.

Back ends: brave (default), bing, google, serpapi. Each engine has its own
request shape and result envelope; everything is normalised to
SearchResult with a simple position-based relevance (1.0, 0.9, ...).

Setup:
  SEARCH_API_KEY            — key for the chosen engine
  SEARCH_PROVIDER           — brave | bing | google | serpapi
  GOOGLE_SEARCH_ENGINE_ID   — google only
"""

import logging
import os
from typing import Callable, Dict, List

from market_engine.models.market_data import SearchResult
from market_providers.base import Provider, ProviderUnavailable

log = logging.getLogger("fs.providers.search")

SEARCH_API_KEY          = os.environ.get("SEARCH_API_KEY", "")
SEARCH_PROVIDER         = os.environ.get("SEARCH_PROVIDER", "brave")
GOOGLE_SEARCH_ENGINE_ID = os.environ.get("GOOGLE_SEARCH_ENGINE_ID", "")

BASE_URLS = {
    "bing":    "https://api.bing.microsoft.com/v7.0/search",
    "google":  "https://www.googleapis.com/customsearch/v1",
    "brave":   "https://api.search.brave.com/res/v1/web/search",
    "serpapi": "https://serpapi.com/search",
}

DEFAULT_MAX_RESULTS = 10

FINANCIAL_KEYWORDS = [
    "mortgage rates", "cd rates", "savings rates", "investment advice",
    "retirement planning", "tax strategies", "budgeting tips",
    "credit card rates", "loan rates", "financial planning",
    "auto loan rate", "personal loan rate", "student loan rate",
    "home equity rate", "heloc rate", "money market rate",
    "investment account rate", "ira rate", "401k rate", "annuity rate",
    "tariffs", "inflation", "inflation rate", "unemployment rate",
]

FINANCIAL_DOMAINS = [
    "bankrate.com", "nerdwallet.com", "investopedia.com",
    "fool.com", "morningstar.com", "yahoo.com/finance",
    "marketwatch.com", "wsj.com", "bloomberg.com",
    "reuters.com", "cnbc.com", "forbes.com",
]


class SearchProvider(Provider):
    name = "search"

    def __init__(self, api_key: str = None, provider: str = None, transport=None):
        super().__init__(SEARCH_API_KEY if api_key is None else api_key, transport)
        self.provider = (provider or SEARCH_PROVIDER).lower()
        if self.provider not in BASE_URLS:
            raise ValueError(f"Unknown search provider: {self.provider}")
        self.base_url = BASE_URLS[self.provider]

    async def search(self, query: str, max_results: int = DEFAULT_MAX_RESULTS,
                     time_range: str = "day", region: str = "US",
                     language: str = "en-US") -> List[SearchResult]:
        if not self.configured:
            raise ProviderUnavailable(self.name, "SEARCH_API_KEY not set")

        url, params, headers = self._request(query, max_results, time_range, region, language)
        data = await self._get_json(url, params=params, headers=headers)
        results = self._parsers()[self.provider](data)
        log.debug(f"{self.provider}: {len(results)} results for {query!r}")
        return results

    # ── Request shapes ────────────────────────────────────────
    def _request(self, query, max_results, time_range, region, language):
        count = str(max_results)
        if self.provider == "brave":
            return self.base_url, {
                "q": query, "count": count, "country": region,
                "search_lang": language.split("-")[0],
            }, {
                "Accept": "application/json",
                "X-Subscription-Token": self.api_key,
                "User-Agent": "Finsight-Financial-App/1.0",
            }
        if self.provider == "bing":
            return self.base_url, {
                "q": query, "count": count, "mkt": language, "freshness": time_range,
                "responseFilter": "Webpages", "textFormat": "Raw", "safeSearch": "Moderate",
            }, {
                "Ocp-Apim-Subscription-Key": self.api_key,
                "Accept": "application/json",
            }
        if self.provider == "google":
            return self.base_url, {
                "key": self.api_key, "cx": GOOGLE_SEARCH_ENGINE_ID, "q": query,
                "num": count, "dateRestrict": "d1" if time_range == "day" else "w1",
                "lr": f"lang_{language.split('-')[0]}",
            }, None
        return self.base_url, {
            "api_key": self.api_key, "q": query, "num": count,
            "tbs": "qdr:d" if time_range == "day" else "qdr:w",
        }, None

    # ── Result envelopes ─────────────────────────────────────
    def _parsers(self) -> Dict[str, Callable[[dict], List[SearchResult]]]:
        return {
            "brave":   lambda d: _normalise((d.get("web") or {}).get("results"),
                                            "Brave", "title", "description", "url"),
            "bing":    lambda d: _normalise((d.get("webPages") or {}).get("value"),
                                            "Bing", "name", "snippet", "url"),
            "google":  lambda d: _normalise(d.get("items"),
                                            "Google", "title", "snippet", "link"),
            "serpapi": lambda d: _normalise(d.get("organic_results"),
                                            "SerpAPI", "title", "snippet", "link"),
        }

    # ── Helpers ───────────────────────────────────────────────
    @staticmethod
    def enhance_financial_query(query: str) -> str:
        """Nudge rate/planning questions towards advice-grade pages."""
        q = query.lower()
        if any(k in q for k in FINANCIAL_KEYWORDS):
            return f"{query} financial advice"
        return query

    @staticmethod
    def filter_financial_results(results: List[SearchResult]) -> List[SearchResult]:
        return [r for r in results if any(d in r.url.lower() for d in FINANCIAL_DOMAINS)]


def _normalise(items, source: str, title_key: str, snippet_key: str,
               url_key: str) -> List[SearchResult]:
    out = []
    for i, item in enumerate(items or []):
        title = item.get(title_key)
        url   = item.get(url_key)
        if not title or not url:
            continue
        out.append(SearchResult(
            title=title,
            snippet=item.get(snippet_key) or "",
            url=url,
            source=source,
            relevance=round(max(0.0, 1 - i * 0.1), 2),
        ))
    return out
