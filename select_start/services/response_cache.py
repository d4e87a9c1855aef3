"""
TTL response cache for provider lookups.

Entry timestamps are readable from outside so callers can apply a shorter
freshness window than the cache-wide TTL.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, List, Optional

from select_start.constants import CacheConstants


@dataclass
class CacheEntry:
    key: Hashable
    value: Any
    stored_at: float


class ResponseCache:
    """Key-value cache where entries older than the TTL read as absent."""

    def __init__(self, ttl: float = CacheConstants.DEFAULT_CACHE_TTL, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def _is_expired(self, entry: CacheEntry, max_age: Optional[float] = None) -> bool:
        age = self._clock() - entry.stored_at
        if age > self.ttl:
            return True
        return max_age is not None and age > max_age

    def get(self, key: Hashable, max_age: Optional[float] = None) -> Any:
        """
        Return the cached value, or None when absent or stale.

        ``max_age`` can only shorten the freshness window. Entries past the
        cache TTL are purged; entries only past ``max_age`` are kept.
        """
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        if self._clock() - entry.stored_at > self.ttl:
            del self._entries[key]
            self.misses += 1
            return None

        if self._is_expired(entry, max_age):
            self.misses += 1
            return None

        self.hits += 1
        return entry.value

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = CacheEntry(key=key, value=value, stored_at=self._clock())

    def delete(self, key: Hashable) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def clear_prefix(self, prefix: str) -> int:
        """Drop every string key starting with ``prefix``."""
        doomed = [key for key in self._entries if isinstance(key, str) and key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def get_timestamp(self, key: Hashable) -> Optional[float]:
        entry = self._entries.get(key)
        return entry.stored_at if entry else None

    def get_age(self, key: Hashable) -> Optional[float]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        return self._clock() - entry.stored_at

    def keys(self) -> List[Hashable]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not self._is_expired(entry)
