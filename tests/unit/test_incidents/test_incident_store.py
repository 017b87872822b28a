"""Tests for incident persistence, retention and the digest window."""

import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from outage_radar.config.defaults import DEFAULT_NOISE_RULES
from outage_radar.incidents.classifier import IncidentClassifier
from outage_radar.incidents.metrics import AlertMetrics
from outage_radar.incidents.store import DIGEST_WINDOW_KEY, IncidentStore
from outage_radar.model.incident import Incident
from outage_radar.model.status import Status
from outage_radar.store.metrics import StoreMetrics
from outage_radar.store.models import Severity
from outage_radar.store.store import StateStore
from tests.helpers.time import FIXED_EPOCH, FakeClock


DAY = 86400


@pytest.fixture
def state_store() -> Generator[StateStore]:
    """Connected store in a temporary directory."""
    StoreMetrics.reset()
    with tempfile.TemporaryDirectory() as tmpdir:
        store = StateStore(Path(tmpdir) / "state.sqlite")
        store.connect()
        yield store
        store.close()


@pytest.fixture
def incidents(state_store: StateStore) -> IncidentStore:
    """Incident store with small retention caps."""
    AlertMetrics.reset()
    return IncidentStore(
        state_store,
        IncidentClassifier(DEFAULT_NOISE_RULES),
        important_cap=3,
        clock=FakeClock(),
    )


def _incident(guid: str, status: Status = Status.MAJOR_OUTAGE, title: str = "API down") -> Incident:
    return Incident(provider="github", id=guid, title=title, status=status, detected_at=FIXED_EPOCH)


class TestPersist:
    """Tests for upserting classified events."""

    def test_persist_stores_classification(
        self, incidents: IncidentStore, state_store: StateStore
    ) -> None:
        """Test persisted events carry severity, importance and summary."""
        incidents.persist([_incident("github:1")], FIXED_EPOCH)

        event = state_store.get_incident_event("github|github:1")
        assert event is not None
        assert event.severity is Severity.OUTAGE
        assert event.important is True
        assert event.impact_summary == "Major Outage: API down"
        assert event.first_seen == FIXED_EPOCH

    def test_repeat_persist_keeps_first_seen(
        self, incidents: IncidentStore, state_store: StateStore
    ) -> None:
        """Test a second sighting only moves last_seen."""
        incidents.persist([_incident("github:1")], FIXED_EPOCH)
        incidents.persist([_incident("github:1", Status.RESOLVED)], FIXED_EPOCH + 600)

        event = state_store.get_incident_event("github|github:1")
        assert event is not None
        assert event.first_seen == FIXED_EPOCH
        assert event.last_seen == FIXED_EPOCH + 600
        assert event.status == "resolved"

    def test_duplicate_keys_in_batch_collapse(
        self, incidents: IncidentStore, state_store: StateStore
    ) -> None:
        """Test a batch with repeated keys writes one row."""
        incidents.persist([_incident("github:1"), _incident("github:1")], FIXED_EPOCH)

        assert len(state_store.list_incident_events()) == 1

    def test_persist_applies_cap(self, incidents: IncidentStore, state_store: StateStore) -> None:
        """Test the important cap is enforced after each persist."""
        for i in range(5):
            incidents.persist([_incident(f"github:{i}")], FIXED_EPOCH + i)

        guids = {e.guid for e in state_store.list_incident_events()}
        assert guids == {"github:2", "github:3", "github:4"}


class TestPrune:
    """Tests for retention."""

    def test_prune_idempotent(self, incidents: IncidentStore, state_store: StateStore) -> None:
        """Test pruning twice with no new events leaves the same set."""
        incidents.persist([_incident("github:old", Status.MAINTENANCE)], FIXED_EPOCH - 90 * DAY)
        incidents.persist([_incident("github:new")], FIXED_EPOCH)

        first = incidents.prune(FIXED_EPOCH)
        remaining = state_store.list_incident_events()
        second = incidents.prune(FIXED_EPOCH)

        assert first.total == 0
        assert second.total == 0
        assert state_store.list_incident_events() == remaining
        assert [e.guid for e in remaining] == ["github:new"]

    def test_prune_drops_old_alert_counts(
        self, incidents: IncidentStore, state_store: StateStore
    ) -> None:
        """Test daily counters older than yesterday are removed."""
        incidents.should_send(_incident("github:1"), FIXED_EPOCH - 3 * DAY)

        incidents.prune(FIXED_EPOCH)

        assert state_store.get_alert_count("github", "20240610") == 0


class TestDigestWindow:
    """Tests for the rolling digest candidate window."""

    def test_push_accumulates(self, incidents: IncidentStore) -> None:
        """Test candidates accumulate within the window."""
        incidents.push_digest_candidate(_incident("github:1"), FIXED_EPOCH)
        window = incidents.push_digest_candidate(_incident("github:2"), FIXED_EPOCH + 60)

        assert [e["id"] for e in window] == ["github|github:1", "github|github:2"]

    def test_push_expires_old_entries(self, incidents: IncidentStore) -> None:
        """Test entries older than 15 minutes fall out."""
        incidents.push_digest_candidate(_incident("github:1"), FIXED_EPOCH)
        window = incidents.push_digest_candidate(_incident("github:2"), FIXED_EPOCH + 16 * 60)

        assert [e["id"] for e in window] == ["github|github:2"]

    def test_clear_entries(self, incidents: IncidentStore, state_store: StateStore) -> None:
        """Test delivered entries are removed."""
        incidents.push_digest_candidate(_incident("github:1"), FIXED_EPOCH)
        incidents.push_digest_candidate(_incident("github:2"), FIXED_EPOCH)

        incidents.clear_digest_entries(["github|github:1"])

        assert [e["id"] for e in state_store.get(DIGEST_WINDOW_KEY)] == ["github|github:2"]

    def test_record_digest_stamps_alert_records(
        self, incidents: IncidentStore, state_store: StateStore
    ) -> None:
        """Test a delivered digest updates last alert time and status."""
        incidents.record_digest([_incident("github:1", Status.PARTIAL_OUTAGE)], FIXED_EPOCH)

        record = state_store.get_alert_record("github")
        assert record is not None
        assert record.last_alert_at == FIXED_EPOCH
        assert record.last_alert_status == "partial_outage"
        assert AlertMetrics.get_instance().digests_total == 1
