# core/token_cache.py
"""In-process TTL cache for employee portal access tokens."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any


@dataclass
class CacheEntry:
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class TokenCache:
    """
    Async key/value store with per-entry TTL.

    Entries are evicted lazily on read. Eviction uses a monotonic clock, so
    callers that carry their own wall-clock expiry must still check it.
    """

    def __init__(self, max_entries: int = 10_000) -> None:
        self._max_entries = max_entries
        self._entries: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def put(self, key: str, value: Any, ttl_seconds: float) -> None:
        async with self._lock:
            now = time.monotonic()
            if len(self._entries) >= self._max_entries:
                self._purge_expired(now)
            self._entries[key] = CacheEntry(value=value, expires_at=now + ttl_seconds)

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(time.monotonic()):
                del self._entries[key]
                return None
            return entry.value

    async def forget(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    def _purge_expired(self, now: float) -> None:
        for key in [k for k, e in self._entries.items() if e.is_expired(now)]:
            del self._entries[key]


token_cache = TokenCache()
