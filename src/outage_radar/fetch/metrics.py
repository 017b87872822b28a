"""Counters for fetch attempts, fallbacks and failures."""

import threading
from dataclasses import dataclass, field
from typing import ClassVar

from outage_radar.fetch.models import FetchErrorClass


@dataclass
class FetchMetrics:
    """Process-wide fetch counters.

    Attempts are counted per transport so a misbehaving primary shows up
    as fallback traffic. Failures count only fetches that failed on every
    transport.
    """

    attempts_by_transport: dict[str, int] = field(default_factory=dict)
    responses_by_status: dict[int, int] = field(default_factory=dict)
    latency_ms_by_transport: dict[str, float] = field(default_factory=dict)
    fallbacks_total: int = 0
    fallbacks_recovered_total: int = 0
    failures_by_class: dict[str, int] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    _instance: ClassVar["FetchMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "FetchMetrics":
        """Get the shared instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the shared instance (tests)."""
        cls._instance = None

    def record_attempt(self, transport: str, status: int, duration_ms: float) -> None:
        """Record one request on one transport.

        Args:
            transport: Transport name (primary or fallback).
            status: HTTP status, 0 when no response arrived.
            duration_ms: Wall time of the attempt.
        """
        with self._lock:
            self.attempts_by_transport[transport] = (
                self.attempts_by_transport.get(transport, 0) + 1
            )
            self.responses_by_status[status] = self.responses_by_status.get(status, 0) + 1
            self.latency_ms_by_transport[transport] = (
                self.latency_ms_by_transport.get(transport, 0.0) + duration_ms
            )

    def record_fallback(self, recovered: bool) -> None:
        """Record a second attempt on the other transport."""
        with self._lock:
            self.fallbacks_total += 1
            if recovered:
                self.fallbacks_recovered_total += 1

    def record_failure(self, error_class: FetchErrorClass) -> None:
        with self._lock:
            key = error_class.value
            self.failures_by_class[key] = self.failures_by_class.get(key, 0) + 1

    def to_dict(self) -> dict[str, object]:
        """Copy of the counters for logging."""
        with self._lock:
            return {
                "attempts_by_transport": dict(self.attempts_by_transport),
                "responses_by_status": dict(self.responses_by_status),
                "latency_ms_by_transport": dict(self.latency_ms_by_transport),
                "fallbacks_total": self.fallbacks_total,
                "fallbacks_recovered_total": self.fallbacks_recovered_total,
                "failures_by_class": dict(self.failures_by_class),
            }
