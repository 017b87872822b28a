"""Durable state: key/value entries, alert throttle, incident events, history."""

from outage_radar.store.errors import (
    ConnectionError,
    MigrationError,
    ReadError,
    StateStoreError,
    WriteError,
)
from outage_radar.store.memory import MemoryCache
from outage_radar.store.metrics import StoreMetrics
from outage_radar.store.models import (
    AlertRecord,
    HistoryEvent,
    PruneResult,
    Severity,
    StoredIncidentEvent,
)
from outage_radar.store.protocols import KeyValueStore
from outage_radar.store.store import StateStore


__all__ = [
    "AlertRecord",
    "ConnectionError",
    "HistoryEvent",
    "KeyValueStore",
    "MemoryCache",
    "MigrationError",
    "PruneResult",
    "ReadError",
    "Severity",
    "StateStore",
    "StateStoreError",
    "StoreMetrics",
    "StoredIncidentEvent",
    "WriteError",
]
