"""Metrics collection for the state store."""

import threading
from dataclasses import dataclass, field
from typing import ClassVar


@dataclass
class StoreMetrics:
    """Metrics for state store operations.

    Attributes:
        db_tx_duration_ms: Cumulative transaction duration in milliseconds.
        db_tx_count: Number of committed transactions.
        db_tx_failures: Number of rolled-back transactions.
        events_upserted_total: Incident event rows inserted.
        events_touched_total: Incident event rows re-sighted.
        events_pruned_total: Incident event rows removed by retention.
        history_pruned_total: History rows removed by retention.
    """

    db_tx_duration_ms: float = 0.0
    db_tx_count: int = 0
    db_tx_failures: int = 0
    events_upserted_total: int = 0
    events_touched_total: int = 0
    events_pruned_total: int = 0
    history_pruned_total: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    _instance: ClassVar["StoreMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "StoreMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_tx_duration(self, duration_ms: float) -> None:
        """Record a committed transaction's duration."""
        with self._lock:
            self.db_tx_duration_ms += duration_ms
            self.db_tx_count += 1

    def record_tx_failure(self) -> None:
        """Record a rolled-back transaction."""
        with self._lock:
            self.db_tx_failures += 1

    def record_event_upsert(self, inserted: bool) -> None:
        """Record an incident event write."""
        with self._lock:
            if inserted:
                self.events_upserted_total += 1
            else:
                self.events_touched_total += 1

    def record_events_pruned(self, count: int) -> None:
        """Record incident events removed by retention."""
        with self._lock:
            self.events_pruned_total += count

    def record_history_pruned(self, count: int) -> None:
        """Record history rows removed by retention."""
        with self._lock:
            self.history_pruned_total += count

    def to_dict(self) -> dict[str, float | int]:
        """Convert metrics to dictionary."""
        with self._lock:
            return {
                "db_tx_duration_ms": self.db_tx_duration_ms,
                "db_tx_count": self.db_tx_count,
                "db_tx_failures": self.db_tx_failures,
                "events_upserted_total": self.events_upserted_total,
                "events_touched_total": self.events_touched_total,
                "events_pruned_total": self.events_pruned_total,
                "history_pruned_total": self.history_pruned_total,
            }


@dataclass
class TransactionContext:
    """Context for a single transaction with timing."""

    tx_id: str
    start_time_ns: int
    operation: str
    affected_rows: int = field(default=0)

    def add_affected_rows(self, rows: int) -> None:
        """Add to the affected row count."""
        self.affected_rows += rows
