"""Key/value storage protocol shared by the cache and the durable store."""

from typing import Any, Protocol


class KeyValueStore(Protocol):
    """Get/set storage with optional expiry.

    Values must be JSON-serializable. Implementations should be
    thread-safe; the poller and read paths share them.
    """

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value, or ``default`` when absent or expired."""
        ...

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Store a value; ``ttl_seconds`` of None means no expiry."""
        ...

    def delete(self, key: str) -> None:
        """Remove a key if present."""
        ...
