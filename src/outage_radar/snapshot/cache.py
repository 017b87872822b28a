"""TTL snapshot cache with a durable last-known-good fallback."""

import time
from collections.abc import Callable

import structlog
from pydantic import ValidationError

from outage_radar.model.incident import ProviderState, sort_states
from outage_radar.settings.app import CACHE_TTL_MAX_SECONDS, CACHE_TTL_MIN_SECONDS, clamp
from outage_radar.snapshot.models import ServiceView, Snapshot
from outage_radar.store.errors import StateStoreError
from outage_radar.store.protocols import KeyValueStore
from outage_radar.trending import TrendingResult, evaluate


logger = structlog.get_logger()

LIVE_KEY = "snapshot:payload:v1"
LAST_GOOD_KEY = "snapshot:last_good:v1"
DEFAULT_TTL_SECONDS = 300

StateSource = Callable[[], list[ProviderState]]


class SnapshotCache:
    """Serves the aggregate view, tolerating upstream and store failures.

    ``refresh`` writes the aggregate to the short-lived cache and to the
    durable store with no expiry. ``read`` prefers the live entry, then
    the last-good payload marked stale, then an empty stale snapshot.
    """

    def __init__(
        self,
        cache: KeyValueStore,
        durable: KeyValueStore,
        source: StateSource | None = None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the snapshot cache.

        Args:
            cache: Ephemeral TTL store.
            durable: Durable store holding the last-good payload.
            source: Returns current provider states for ``refresh``.
            ttl_seconds: Live entry lifetime, clamped to 120-900.
            clock: Returns the current epoch seconds.
        """
        self._cache = cache
        self._durable = durable
        self._source = source
        self._ttl_seconds = clamp(ttl_seconds, CACHE_TTL_MIN_SECONDS, CACHE_TTL_MAX_SECONDS)
        self._clock = clock
        self._log = logger.bind(component="snapshot")

    @property
    def ttl_seconds(self) -> int:
        """Effective live-cache TTL."""
        return self._ttl_seconds

    def refresh(self, force: bool = True) -> Snapshot:
        """Rebuild the snapshot from the state source.

        Args:
            force: Rebuild even when a live entry exists.

        Returns:
            The fresh snapshot, or the read-path result when no source is
            configured.

        Raises:
            Whatever the source raises, e.g. PollInProgressError when the
            source runs a poll cycle that cannot start.
        """
        if not force:
            live = self._load(self._cache, LIVE_KEY)
            if live is not None:
                return live
        if self._source is None:
            return self.read()
        return self.store(self._source())

    def store(
        self,
        states: list[ProviderState],
        trending: TrendingResult | None = None,
        now: int | None = None,
    ) -> Snapshot:
        """Build a snapshot from states and persist it to both tiers.

        A durable write failure is logged and tolerated; the live entry
        and the returned snapshot are unaffected.
        """
        now = int(self._clock()) if now is None else now
        snapshot = Snapshot(
            updated_at=now,
            services=[ServiceView.from_state(s) for s in sort_states(states)],
            ttl_seconds=self._ttl_seconds,
            stale=False,
            trending=trending if trending is not None else evaluate(states, now),
        )
        payload = snapshot.model_dump(mode="json")
        self._cache.set(LIVE_KEY, payload, ttl_seconds=self._ttl_seconds)
        try:
            self._durable.set(LAST_GOOD_KEY, payload)
        except StateStoreError as e:
            self._log.error(
                "persistence_unavailable", operation="snapshot_last_good", error=str(e)
            )
        self._log.info("snapshot_stored", services=len(snapshot.services))
        return snapshot

    def read(self) -> Snapshot:
        """Return the best available snapshot; never raises for store errors."""
        live = self._load(self._cache, LIVE_KEY)
        if live is not None and live.services:
            return live

        last_good = self._load(self._durable, LAST_GOOD_KEY)
        if last_good is not None and last_good.services:
            self._log.info("snapshot_served_stale", updated_at=last_good.updated_at)
            return last_good.model_copy(update={"stale": True})

        return Snapshot(
            updated_at=int(self._clock()),
            services=[],
            ttl_seconds=self._ttl_seconds,
            stale=True,
        )

    def _load(self, store: KeyValueStore, key: str) -> Snapshot | None:
        try:
            payload = store.get(key)
        except StateStoreError as e:
            self._log.warning("snapshot_read_failed", key=key, error=str(e))
            return None
        if not isinstance(payload, dict):
            return None
        try:
            snapshot = Snapshot.model_validate(payload)
        except ValidationError as e:
            self._log.warning("snapshot_payload_invalid", key=key, error=str(e))
            return None
        return snapshot.model_copy(update={"ttl_seconds": self._ttl_seconds})
