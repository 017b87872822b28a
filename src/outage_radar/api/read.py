"""Read-side facade for dashboards and collaborators."""

import hashlib
import json
import time
from collections.abc import Callable
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from outage_radar.incidents.history import MAX_QUERY_DAYS, HistoryLog, HistoryReport
from outage_radar.poll.errors import PollInProgressError
from outage_radar.poll.runner import PollRunner
from outage_radar.snapshot.cache import SnapshotCache
from outage_radar.snapshot.models import Snapshot
from outage_radar.store.errors import StateStoreError


logger = structlog.get_logger()


def compute_etag(payload: dict[str, Any]) -> str:
    """Quoted sha1 of the canonical JSON encoding of a payload."""
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return '"' + hashlib.sha1(encoded.encode("utf-8")).hexdigest() + '"'  # noqa: S324


class SummaryResponse(BaseModel):
    """Summary payload with its entity tag."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    payload: dict[str, Any] = Field(default_factory=dict)
    etag: str

    def matches(self, if_none_match: str | None) -> bool:
        """Whether an ``If-None-Match`` header value matches this payload.

        Accepts comma-separated lists and weak validators.
        """
        if not if_none_match:
            return False
        for candidate in if_none_match.split(","):
            candidate = candidate.strip()
            if candidate in {self.etag, f"W/{self.etag}", "*"}:
                return True
        return False


class ReadApi:
    """Summary, manual refresh and history queries over the cached state.

    Never raises for store failures: summary and refresh fall back to the
    best snapshot the cache can produce.
    """

    def __init__(
        self,
        snapshot_cache: SnapshotCache,
        history: HistoryLog,
        runner: PollRunner | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the read API.

        Args:
            snapshot_cache: Snapshot cache serving the aggregate view.
            history: Status history log for day-window queries.
            runner: Poll runner used by manual refresh; None rebuilds
                from the snapshot source instead.
            clock: Returns the current epoch seconds.
        """
        self._snapshot = snapshot_cache
        self._history = history
        self._runner = runner
        self._clock = clock
        self._log = logger.bind(component="read_api")

    def summary(self, lite: bool = False, providers: list[str] | None = None) -> SummaryResponse:
        """Current aggregate view.

        Args:
            lite: Return only the trending flag.
            providers: Restrict services to these provider ids.

        Returns:
            SummaryResponse with the payload and its ETag.
        """
        snapshot = self._snapshot.read()
        trending = snapshot.trending
        if lite:
            payload: dict[str, Any] = {"trending": bool(trending and trending.trending)}
        else:
            services = snapshot.services
            if providers:
                wanted = set(providers)
                services = [s for s in services if s.id in wanted]
            payload = {
                "providers": [s.model_dump(mode="json") for s in services],
                "updated_at": snapshot.updated_at,
                "ttl_seconds": snapshot.ttl_seconds,
                "stale": snapshot.stale,
                "trending": trending.model_dump(mode="json")
                if trending
                else {"trending": False, "signals": [], "generated_at": snapshot.updated_at},
            }
            errors = [
                {"provider": s.id, "message": s.error} for s in services if s.error
            ]
            if errors:
                payload["errors"] = errors
        return SummaryResponse(payload=payload, etag=compute_etag(payload))

    def refresh(self) -> Snapshot:
        """Force a poll cycle and return the resulting snapshot.

        A cycle that cannot start in time, or a store failure, yields the
        cached snapshot instead.
        """
        if self._runner is None:
            try:
                return self._snapshot.refresh(force=True)
            except StateStoreError as e:
                self._log.error("persistence_unavailable", operation="refresh", error=str(e))
                return self._snapshot.read()

        try:
            result = self._runner.trigger_manual()
        except PollInProgressError as e:
            self._log.warning("refresh_skipped", reason="poll_in_progress", poll_id=e.poll_id)
            return self._snapshot.read()
        except StateStoreError as e:
            self._log.error("persistence_unavailable", operation="refresh", error=str(e))
            return self._snapshot.read()

        self._log.info(
            "refresh_complete",
            poll_id=result.poll_id,
            providers=len(result.states),
            cancelled=result.cancelled,
        )
        return self._snapshot.read()

    def history(
        self,
        providers: list[str] | None = None,
        days: int = 30,
    ) -> HistoryReport:
        """Per-day incident counts and last status per provider.

        Args:
            providers: Provider ids; None means every recorded provider.
            days: Window size, capped at 90.

        Returns:
            HistoryReport; empty when the store is unreadable.
        """
        now = int(self._clock())
        try:
            return self._history.query(providers=providers, days=days, now=now)
        except StateStoreError as e:
            self._log.error("persistence_unavailable", operation="history", error=str(e))
            days = max(1, min(days, MAX_QUERY_DAYS))
            return HistoryReport(days=days, since=now - days * 86400)
