"""
Finsight — In-Process TTL Cache
────────────────────────────────
Dict-backed cache owned by the Data Orchestrator.

An entry is fresh while `now - fetched_at < ttl`. Stale entries are
never patched: the caller refetches and replaces the whole payload.
Expired entries are swept on every write and whenever the cache is
listed or counted, so keys that are never read again do not pile up.
Each server process has its own cache; nothing is shared.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

log = logging.getLogger("fs.cache")


@dataclass
class CacheEntry:
    payload:    Any
    fetched_at: float
    ttl:        float

    def is_fresh(self, now: float) -> bool:
        return (now - self.fetched_at) < self.ttl


class TTLCache:
    """Plain key → CacheEntry map with pattern invalidation."""

    def __init__(self, default_ttl: float, clock: Callable[[], float] = time.time):
        self.default_ttl = default_ttl
        self._clock      = clock
        self._entries: Dict[str, CacheEntry] = {}
        self.last_set: Optional[float] = None

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_fresh(self._clock()):
            log.debug(f"Stale entry dropped: {key}")
            del self._entries[key]
            return None
        return entry.payload

    def set(self, key: str, payload: Any, ttl: Optional[float] = None) -> None:
        now = self._clock()
        self.purge_expired(now)
        self._entries[key] = CacheEntry(
            payload=payload,
            fetched_at=now,
            ttl=self.default_ttl if ttl is None else ttl,
        )
        self.last_set = now

    def invalidate(self, pattern: str) -> List[str]:
        """Remove every key containing `pattern`. Returns the removed keys."""
        removed = [k for k in self._entries if pattern in k]
        for k in removed:
            del self._entries[k]
        return removed

    def purge_expired(self, now: Optional[float] = None) -> List[str]:
        """Drop every entry past its TTL. Returns the removed keys."""
        now = self._clock() if now is None else now
        expired = [k for k, e in self._entries.items() if not e.is_fresh(now)]
        for k in expired:
            del self._entries[k]
        if expired:
            log.debug(f"Swept {len(expired)} expired entries")
        return expired

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> List[str]:
        self.purge_expired()
        return list(self._entries.keys())

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._entries)

    def stats(self) -> dict:
        keys = self.keys()
        return {"size": len(keys), "keys": keys}
