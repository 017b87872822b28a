"""Metrics for alert eligibility decisions."""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar


class SuppressReason(str, Enum):
    """Why ``should_send`` returned False."""

    OPERATIONAL_RESET = "operational_reset"
    MAINTENANCE = "maintenance"
    NOT_ALERTABLE = "not_alertable"
    NOT_IMPORTANT = "not_important"
    DUPLICATE_GUID = "duplicate_guid"
    COOLDOWN = "cooldown"
    DAILY_CAP = "daily_cap"


# Reasons reported under the duplicate_suppressed outcome
DUPLICATE_REASONS = frozenset({SuppressReason.DUPLICATE_GUID, SuppressReason.COOLDOWN})


@dataclass
class AlertMetrics:
    """Counts of alert decisions and persistence failures."""

    alerts_eligible_total: int = 0
    escalations_total: int = 0
    recoveries_total: int = 0
    suppressed_total: dict[str, int] = field(default_factory=dict)
    duplicate_suppressed_total: int = 0
    persistence_failures_total: int = 0
    digests_total: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    _instance: ClassVar["AlertMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "AlertMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_eligible(self, escalation: bool = False, recovery: bool = False) -> None:
        """Record an incident that passed eligibility."""
        with self._lock:
            self.alerts_eligible_total += 1
            if escalation:
                self.escalations_total += 1
            if recovery:
                self.recoveries_total += 1

    def record_suppressed(self, reason: SuppressReason) -> None:
        """Record a suppressed alert."""
        with self._lock:
            self.suppressed_total[reason.value] = (
                self.suppressed_total.get(reason.value, 0) + 1
            )
            if reason in DUPLICATE_REASONS:
                self.duplicate_suppressed_total += 1

    def record_persistence_failure(self) -> None:
        """Record a store write failure during a poll."""
        with self._lock:
            self.persistence_failures_total += 1

    def record_digest(self) -> None:
        """Record a digest composed in place of individual alerts."""
        with self._lock:
            self.digests_total += 1

    def to_dict(self) -> dict[str, int | dict[str, int]]:
        """Convert metrics to dictionary."""
        with self._lock:
            return {
                "alerts_eligible_total": self.alerts_eligible_total,
                "escalations_total": self.escalations_total,
                "recoveries_total": self.recoveries_total,
                "suppressed_total": dict(self.suppressed_total),
                "duplicate_suppressed_total": self.duplicate_suppressed_total,
                "persistence_failures_total": self.persistence_failures_total,
                "digests_total": self.digests_total,
            }
