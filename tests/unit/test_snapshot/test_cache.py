"""Tests for the stale-tolerant snapshot cache."""

from unittest.mock import MagicMock

import pytest

from outage_radar.model.incident import ProviderState
from outage_radar.model.status import Status
from outage_radar.snapshot.cache import LAST_GOOD_KEY, LIVE_KEY, SnapshotCache
from outage_radar.store.errors import ReadError, WriteError
from outage_radar.store.memory import MemoryCache
from tests.helpers.time import FIXED_EPOCH, FakeClock


@pytest.fixture
def clock() -> FakeClock:
    """Advanceable clock."""
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> MemoryCache:
    """Live tier."""
    return MemoryCache(clock=clock)


@pytest.fixture
def durable(clock: FakeClock) -> MemoryCache:
    """Stand-in for the durable tier."""
    return MemoryCache(clock=clock)


def _states() -> list[ProviderState]:
    return [
        ProviderState(
            provider="slack",
            name="Slack",
            status=Status.OPERATIONAL,
            updated_at=FIXED_EPOCH,
        ),
        ProviderState(
            provider="github",
            name="GitHub",
            status=Status.MAJOR_OUTAGE,
            message="Git operations unavailable",
            updated_at=FIXED_EPOCH,
        ),
    ]


class TestStore:
    """Tests for writing snapshots."""

    def test_store_writes_both_tiers(
        self, cache: MemoryCache, durable: MemoryCache, clock: FakeClock
    ) -> None:
        """Test the snapshot lands in the live and last-good keys."""
        snapshots = SnapshotCache(cache, durable, clock=clock)

        snapshot = snapshots.store(_states())

        assert [s.id for s in snapshot.services] == ["github", "slack"]
        assert snapshot.services[0].status_text == "Major Outage"
        assert snapshot.stale is False
        assert snapshot.updated_at == FIXED_EPOCH
        assert cache.get(LIVE_KEY) == durable.get(LAST_GOOD_KEY)

    def test_durable_failure_tolerated(self, cache: MemoryCache, clock: FakeClock) -> None:
        """Test a failing durable tier does not break the write path."""
        durable = MagicMock()
        durable.set.side_effect = WriteError("kv_set", "disk I/O error")
        snapshots = SnapshotCache(cache, durable, clock=clock)

        snapshot = snapshots.store(_states())

        assert snapshot.stale is False
        assert cache.get(LIVE_KEY) is not None

    def test_ttl_clamped(self, cache: MemoryCache, durable: MemoryCache) -> None:
        """Test the live TTL is clamped into range."""
        assert SnapshotCache(cache, durable, ttl_seconds=10).ttl_seconds == 120
        assert SnapshotCache(cache, durable, ttl_seconds=5000).ttl_seconds == 900


class TestRead:
    """Tests for the read fallback chain."""

    def test_live_entry_preferred(
        self, cache: MemoryCache, durable: MemoryCache, clock: FakeClock
    ) -> None:
        """Test a live entry is served fresh."""
        snapshots = SnapshotCache(cache, durable, clock=clock)
        snapshots.store(_states())

        snapshot = snapshots.read()

        assert not snapshot.stale
        assert len(snapshot.services) == 2

    def test_expired_live_falls_back_to_last_good(
        self, cache: MemoryCache, durable: MemoryCache, clock: FakeClock
    ) -> None:
        """Test an expired live entry serves last-good marked stale."""
        snapshots = SnapshotCache(cache, durable, ttl_seconds=300, clock=clock)
        snapshots.store(_states())

        clock.advance(301)
        snapshot = snapshots.read()

        assert snapshot.stale is True
        assert snapshot.updated_at == FIXED_EPOCH
        assert [s.id for s in snapshot.services] == ["github", "slack"]

    def test_nothing_cached_is_empty_stale(
        self, cache: MemoryCache, durable: MemoryCache, clock: FakeClock
    ) -> None:
        """Test an empty store yields an empty stale snapshot."""
        snapshot = SnapshotCache(cache, durable, clock=clock).read()

        assert snapshot.stale is True
        assert snapshot.services == []

    def test_store_read_failure_tolerated(self, cache: MemoryCache, clock: FakeClock) -> None:
        """Test durable read errors degrade to the empty snapshot."""
        durable = MagicMock()
        durable.get.side_effect = ReadError("database is locked")

        snapshot = SnapshotCache(cache, durable, clock=clock).read()

        assert snapshot.stale is True
        durable.get.assert_called_once()

    def test_invalid_payload_ignored(
        self, cache: MemoryCache, durable: MemoryCache, clock: FakeClock
    ) -> None:
        """Test a corrupt payload is skipped rather than raised."""
        cache.set(LIVE_KEY, {"services": "nope"})
        durable.set(LAST_GOOD_KEY, {"services": "nope"})

        snapshot = SnapshotCache(cache, durable, clock=clock).read()

        assert snapshot.services == []
        assert snapshot.stale is True


class TestRefresh:
    """Tests for rebuilding from the state source."""

    def test_refresh_uses_source(
        self, cache: MemoryCache, durable: MemoryCache, clock: FakeClock
    ) -> None:
        """Test refresh pulls states from the source."""
        source = MagicMock(return_value=_states())
        snapshots = SnapshotCache(cache, durable, source=source, clock=clock)

        snapshot = snapshots.refresh()

        source.assert_called_once()
        assert len(snapshot.services) == 2
        assert snapshot.trending is not None

    def test_refresh_without_force_reuses_live(
        self, cache: MemoryCache, durable: MemoryCache, clock: FakeClock
    ) -> None:
        """Test a non-forced refresh serves the live entry."""
        source = MagicMock(return_value=_states())
        snapshots = SnapshotCache(cache, durable, source=source, clock=clock)
        snapshots.refresh()

        snapshots.refresh(force=False)

        assert source.call_count == 1

    def test_refresh_without_source_reads(
        self, cache: MemoryCache, durable: MemoryCache, clock: FakeClock
    ) -> None:
        """Test refresh falls back to read when no source is wired."""
        snapshots = SnapshotCache(cache, durable, clock=clock)

        assert snapshots.refresh().stale is True
