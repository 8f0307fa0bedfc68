"""
Finsight — Provider Adapter Base
─────────────────────────────────
All adapters inherit from Provider.

Contract with the core: an adapter call either returns fully populated
records or raises ProviderUnavailable. Anything partial (one FRED series
missing, one search result malformed) is resolved inside the adapter.
"""

import logging
from typing import Optional

import httpx

log = logging.getLogger("fs.providers")

REQUEST_TIMEOUT = 10


class ProviderUnavailable(Exception):
    """A provider could not deliver data this cycle (network, auth, quota)."""

    def __init__(self, provider: str, reason: str):
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason   = reason


class Provider:
    """
    Holds the API key and builds HTTP clients.

    `transport` lets tests plug in httpx.MockTransport without touching
    the network.
    """

    name = "provider"

    def __init__(self, api_key: str = "", transport: Optional[httpx.AsyncBaseTransport] = None,
                 timeout: float = REQUEST_TIMEOUT):
        self.api_key    = api_key or ""
        self._transport = transport
        self._timeout   = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def _get_json(self, url: str, params: dict = None, headers: dict = None) -> dict:
        """GET and decode JSON, mapping every failure onto ProviderUnavailable."""
        try:
            async with self._client() as client:
                r = await client.get(url, params=params, headers=headers)
        except httpx.TimeoutException:
            raise ProviderUnavailable(self.name, "request timed out")
        except httpx.HTTPError as e:
            raise ProviderUnavailable(self.name, f"request failed: {e}")

        if r.status_code == 429:
            raise ProviderUnavailable(self.name, "rate limit reached")
        if r.status_code in (401, 403):
            raise ProviderUnavailable(self.name, "API key invalid or expired")
        if r.status_code != 200:
            raise ProviderUnavailable(self.name, f"HTTP {r.status_code}: {r.text[:200]}")
        try:
            return r.json()
        except ValueError:
            raise ProviderUnavailable(self.name, "response was not JSON")
