"""
Filter result cache owned by a single pipeline instance.
"""
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Optional, Tuple

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        if lookups == 0:
            return 0.0
        return self.hits / lookups


@dataclass
class _Entry:
    stored_at: float
    source: Any
    value: Any


class ResultCache:
    """
    TTL + LRU cache keyed on (source identity, selection snapshot).

    The source object itself is held by each entry, which keeps its ``id``
    from being reused while the entry lives and lets lookups confirm that a
    key still refers to the same dataset.
    """

    def __init__(self, ttl_seconds: float = 60.0, max_entries: int = 32,
                 clock: Optional[Clock] = None):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max(1, int(max_entries))
        self._clock = clock or time.monotonic
        self._entries: "OrderedDict[Tuple[int, Hashable], _Entry]" = OrderedDict()
        self.stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def _key(self, source: Any, snapshot: Hashable) -> Tuple[int, Hashable]:
        return (id(source), snapshot)

    def get(self, source: Any, snapshot: Hashable) -> Optional[Any]:
        key = self._key(source, snapshot)
        entry = self._entries.get(key)

        if entry is None or entry.source is not source:
            self.stats.misses += 1
            return None

        if self.ttl_seconds is not None and self._clock() - entry.stored_at > self.ttl_seconds:
            del self._entries[key]
            self.stats.expirations += 1
            self.stats.misses += 1
            return None

        self._entries.move_to_end(key)
        self.stats.hits += 1
        return entry.value

    def put(self, source: Any, snapshot: Hashable, value: Any) -> None:
        key = self._key(source, snapshot)
        self._entries[key] = _Entry(stored_at=self._clock(), source=source, value=value)
        self._entries.move_to_end(key)

        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
            self.stats.evictions += 1

    def invalidate(self, source: Any = None) -> int:
        """Drop entries for ``source`` (or everything). Returns the number dropped."""
        if source is None:
            dropped = len(self._entries)
            self._entries.clear()
        else:
            stale = [key for key, entry in self._entries.items() if entry.source is source]
            for key in stale:
                del self._entries[key]
            dropped = len(stale)

        if dropped:
            logger.debug("Filter cache invalidated %s entries", dropped)
        return dropped
