"""Process-local TTL cache.

Caches are non-authoritative: a cold process recomputes, and every entry is
replaced in a single assignment so readers never observe a half-built value.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CacheHit(Generic[T]):
    """A cached value plus how long ago it was stored."""

    value: T
    age_seconds: float

    @property
    def age_minutes(self) -> int:
        return int(self.age_seconds // 60)


class TTLCache(Generic[T]):
    """Keyed in-memory map of (stored_at, value) with a fixed time-to-live."""

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, tuple[float, T]] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: str) -> CacheHit[T] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        age = self._clock() - stored_at
        if age >= self._ttl:
            self._entries.pop(key, None)
            return None
        return CacheHit(value=value, age_seconds=age)

    def set(self, key: str, value: T) -> None:
        if key not in self._entries and len(self._entries) >= self._max_entries:
            # Evict the oldest entry
            oldest = min(self._entries, key=lambda k: self._entries[k][0])
            self._entries.pop(oldest, None)
        self._entries[key] = (self._clock(), value)

    def invalidate(self, key: str | None = None) -> None:
        if key is None:
            self._entries = {}
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)
