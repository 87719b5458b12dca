"""
Artwork cache for the sidecar.

A small in-memory key -> value store bounded two ways:
1. By count: at most `max_size` entries, least-recently-used evicted first.
2. By age: entries older than `ttl_seconds` are treated as missing.

Expiry is lazy. Nothing sweeps the cache in the background; an expired
entry is dropped the next time it is looked up with `get` or `has`.

All methods are synchronous and are only called from the event loop thread,
so there is no locking here.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

# At ~100KB per thumbnail this keeps the cache around 10MB
DEFAULT_MAX_SIZE = 100

# Artwork may be edited on the controller, so entries go stale after an hour
DEFAULT_TTL_SECONDS = 60 * 60

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """A cached value and the clock reading at which it was stored."""

    value: V
    timestamp: float


class ArtworkCache(Generic[V]):
    """
    LRU cache with per-entry time-to-live.

    The OrderedDict keeps access order: the first key is the least recently
    used one, the last key the most recently used one.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize an empty cache.

        Args:
            max_size: Maximum number of entries (must be at least 1).
            ttl_seconds: Age after which an entry is treated as absent.
            clock: Monotonic time source, replaceable in tests.
        """
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")

        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry[V]] = OrderedDict()

    def _is_expired(self, entry: CacheEntry[V]) -> bool:
        return self._clock() - entry.timestamp > self.ttl_seconds

    def get(self, key: str) -> V | None:
        """
        Look up a key and mark it as most recently used.

        Returns:
            The cached value, or None if missing or expired.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._is_expired(entry):
            del self._entries[key]
            logger.debug("Artwork cache entry expired: %s", key)
            return None

        self._entries.move_to_end(key)
        return entry.value

    def set(self, key: str, value: V) -> None:
        """
        Store a value, evicting the least recently used entry when full.

        Storing an existing key refreshes both its position and its timestamp.
        """
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Artwork cache full, evicted %s", evicted)

        self._entries[key] = CacheEntry(value=value, timestamp=self._clock())

    def has(self, key: str) -> bool:
        """Check for a live entry without changing its LRU position."""
        entry = self._entries.get(key)
        if entry is None:
            return False

        if self._is_expired(entry):
            del self._entries[key]
            return False

        return True

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()

    def size(self) -> int:
        """Number of resident entries, including ones not yet found expired."""
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)
