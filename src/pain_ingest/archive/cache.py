"""Query cache for archive responses."""

import hashlib
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

DEFAULT_TTL_SECONDS = 24 * 60 * 60


def generate_cache_key(endpoint: str, params: Mapping[str, str]) -> str:
    """Stable key for a request.

    Parameters are sorted before hashing, so equivalent requests whose
    parameters were given in a different order share one key.
    """
    query = urlencode(sorted(params.items()))
    return hashlib.sha256(f"{endpoint}?{query}".encode()).hexdigest()


@dataclass(frozen=True)
class QueryCacheEntry:
    """A cached payload and its expiry on the cache clock."""

    key: str
    payload: Any
    expires_at: float


class InMemoryQueryCache:
    """Process-local ``QueryCache``.

    Entries are written once and never updated in place; a ``set`` on a
    live key is ignored. Expired entries are evicted when read.

    Args:
        clock: Monotonic clock used for expiry.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, QueryCacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry.payload

    async def set(self, key: str, payload: Any, ttl: float = DEFAULT_TTL_SECONDS) -> None:
        now = self._clock()
        existing = self._entries.get(key)
        if existing is not None and now < existing.expires_at:
            return
        self._entries[key] = QueryCacheEntry(key=key, payload=payload, expires_at=now + ttl)
