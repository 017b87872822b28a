"""Coarse append-only provider status log for long-range reporting."""

import time
from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from pydantic import BaseModel, ConfigDict, Field

from outage_radar.model.incident import ProviderState
from outage_radar.model.status import Status, is_degraded_or_worse, normalize_status
from outage_radar.store.models import HistoryEvent
from outage_radar.store.store import StateStore


logger = structlog.get_logger()

DEFAULT_HISTORY_RETENTION_DAYS = 1095
MAX_QUERY_DAYS = 90


class ProviderHistory(BaseModel):
    """History rollup for one provider.

    Attributes:
        provider: Provider id.
        daily_incidents: ``YYYY-MM-DD`` -> transitions into a problem state.
        last_status: Most recent recorded status, if any.
        last_changed_at: Epoch seconds of that record.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    provider: str
    daily_incidents: dict[str, int] = Field(default_factory=dict)
    last_status: str | None = None
    last_changed_at: int | None = None


class HistoryReport(BaseModel):
    """Result of a history query."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    days: int
    since: int
    providers: dict[str, ProviderHistory] = Field(default_factory=dict)


class HistoryLog:
    """Records provider status transitions and answers day-window queries."""

    def __init__(
        self,
        state_store: StateStore,
        retention_days: int = DEFAULT_HISTORY_RETENTION_DAYS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = state_store
        self._retention_seconds = retention_days * 86400
        self._clock = clock
        self._log = logger.bind(component="history")

    def append(self, states: list[ProviderState], now: int | None = None) -> int:
        """Append a row for every provider whose status changed.

        Unknown states are skipped so a failed fetch never reads as a
        transition.

        Returns:
            Number of rows written.
        """
        now = int(self._clock()) if now is None else now
        events: list[HistoryEvent] = []
        for state in states:
            if state.status is Status.UNKNOWN:
                continue
            latest = self._store.latest_history(state.provider)
            if latest is not None and latest.status == state.status.value:
                continue
            events.append(
                HistoryEvent(provider=state.provider, status=state.status.value, timestamp=now)
            )
        written = self._store.append_history(events)
        if written:
            self._log.info("history_appended", rows=written)
        return written

    def prune(self, now: int | None = None) -> int:
        """Drop rows past the retention horizon."""
        now = int(self._clock()) if now is None else now
        return self._store.prune_history(now - self._retention_seconds)

    def query(
        self,
        providers: list[str] | None = None,
        days: int = 30,
        now: int | None = None,
    ) -> HistoryReport:
        """Per-day incident counts and last status per provider.

        Args:
            providers: Provider ids to include; None means all.
            days: Window size, clamped to 1..90.
            now: Current epoch seconds.

        Returns:
            HistoryReport keyed by provider id.
        """
        now = int(self._clock()) if now is None else now
        days = max(1, min(days, MAX_QUERY_DAYS))
        since = now - days * 86400

        rollups: dict[str, dict[str, int]] = {}
        last: dict[str, HistoryEvent] = {}
        for event in self._store.history_since(since, providers):
            counts = rollups.setdefault(event.provider, {})
            if is_degraded_or_worse(normalize_status(event.status, provider_id=event.provider)):
                day = datetime.fromtimestamp(event.timestamp, UTC).strftime("%Y-%m-%d")
                counts[day] = counts.get(day, 0) + 1
            last[event.provider] = event

        for provider in providers or []:
            if provider not in last:
                latest = self._store.latest_history(provider)
                if latest is not None:
                    last[provider] = latest
                rollups.setdefault(provider, {})

        return HistoryReport(
            days=days,
            since=since,
            providers={
                provider: ProviderHistory(
                    provider=provider,
                    daily_incidents=dict(sorted(counts.items())),
                    last_status=last[provider].status if provider in last else None,
                    last_changed_at=last[provider].timestamp if provider in last else None,
                )
                for provider, counts in sorted(rollups.items())
            },
        )
