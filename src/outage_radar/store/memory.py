"""In-process TTL key/value cache."""

import copy
import threading
import time
from collections.abc import Callable
from typing import Any


class MemoryCache:
    """Ephemeral key/value cache with per-key expiry.

    Implements the KeyValueStore protocol. Values are deep-copied in and
    out so callers never share mutable state with the cache.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        """Initialize the cache.

        Args:
            clock: Returns the current epoch seconds; injectable for tests.
        """
        self._clock = clock
        self._entries: dict[str, tuple[Any, float | None]] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        """Return a live value or ``default``."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            value, expires_at = entry
            if expires_at is not None and expires_at <= self._clock():
                del self._entries[key]
                return default
            return copy.deepcopy(value)

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Store a value with an optional TTL."""
        expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
        with self._lock:
            self._entries[key] = (copy.deepcopy(value), expires_at)

    def delete(self, key: str) -> None:
        """Remove a key if present."""
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()
