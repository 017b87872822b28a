"""Tests for the provider status history log."""

import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from outage_radar.incidents.history import HistoryLog
from outage_radar.model.incident import ProviderState
from outage_radar.model.status import Status
from outage_radar.store.metrics import StoreMetrics
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
def history(state_store: StateStore) -> HistoryLog:
    """History log with a fixed clock."""
    return HistoryLog(state_store, clock=FakeClock())


def _state(provider: str, status: Status) -> ProviderState:
    return ProviderState(
        provider=provider,
        name=provider.title(),
        status=status,
        updated_at=FIXED_EPOCH,
    )


class TestAppend:
    """Tests for transition-only appends."""

    def test_first_observation_written(self, history: HistoryLog) -> None:
        """Test the first status of each provider is recorded."""
        written = history.append(
            [_state("github", Status.OPERATIONAL), _state("slack", Status.DEGRADED)],
            FIXED_EPOCH,
        )
        assert written == 2

    def test_unchanged_status_skipped(self, history: HistoryLog) -> None:
        """Test repeated statuses do not add rows."""
        history.append([_state("github", Status.DEGRADED)], FIXED_EPOCH)

        assert history.append([_state("github", Status.DEGRADED)], FIXED_EPOCH + 300) == 0
        assert history.append([_state("github", Status.OPERATIONAL)], FIXED_EPOCH + 600) == 1

    def test_unknown_skipped(self, history: HistoryLog, state_store: StateStore) -> None:
        """Test failed fetches never appear in history."""
        history.append([_state("github", Status.OPERATIONAL)], FIXED_EPOCH)
        history.append([_state("github", Status.UNKNOWN)], FIXED_EPOCH + 300)
        history.append([_state("github", Status.OPERATIONAL)], FIXED_EPOCH + 600)

        assert [e.status for e in state_store.history_since(0)] == ["operational"]


class TestQuery:
    """Tests for day-window rollups."""

    def test_daily_counts_and_last_status(self, history: HistoryLog) -> None:
        """Test problem transitions are counted per UTC day."""
        history.append([_state("github", Status.DEGRADED)], FIXED_EPOCH - DAY)
        history.append([_state("github", Status.OPERATIONAL)], FIXED_EPOCH - DAY + 600)
        history.append([_state("github", Status.MAJOR_OUTAGE)], FIXED_EPOCH)

        report = history.query(days=30, now=FIXED_EPOCH + 60)

        github = report.providers["github"]
        assert github.daily_incidents == {"2024-06-12": 1, "2024-06-13": 1}
        assert github.last_status == "major_outage"
        assert github.last_changed_at == FIXED_EPOCH

    def test_days_clamped(self, history: HistoryLog) -> None:
        """Test the window is clamped to 1..90 days."""
        assert history.query(days=365, now=FIXED_EPOCH).days == 90
        assert history.query(days=0, now=FIXED_EPOCH).days == 1

    def test_window_excludes_old_rows(self, history: HistoryLog) -> None:
        """Test rows before the window are not counted."""
        history.append([_state("github", Status.DEGRADED)], FIXED_EPOCH - 10 * DAY)

        report = history.query(days=7, now=FIXED_EPOCH)

        assert "github" not in report.providers

    def test_requested_provider_reports_older_last_status(self, history: HistoryLog) -> None:
        """Test a named provider quiet in the window still reports its last status."""
        history.append([_state("github", Status.DEGRADED)], FIXED_EPOCH - 10 * DAY)

        report = history.query(providers=["github", "slack"], days=7, now=FIXED_EPOCH)

        assert report.providers["github"].daily_incidents == {}
        assert report.providers["github"].last_status == "degraded"
        assert report.providers["slack"].last_status is None

    def test_provider_filter(self, history: HistoryLog) -> None:
        """Test only requested providers are returned."""
        history.append(
            [_state("github", Status.DEGRADED), _state("slack", Status.DEGRADED)], FIXED_EPOCH
        )

        report = history.query(providers=["slack"], now=FIXED_EPOCH)

        assert list(report.providers) == ["slack"]


class TestPrune:
    """Tests for the multi-year horizon."""

    def test_prune_horizon(self, state_store: StateStore) -> None:
        """Test rows older than the retention horizon are dropped."""
        history = HistoryLog(state_store, retention_days=30, clock=FakeClock())
        history.append([_state("github", Status.DEGRADED)], FIXED_EPOCH - 40 * DAY)
        history.append([_state("github", Status.OPERATIONAL)], FIXED_EPOCH)

        assert history.prune(FIXED_EPOCH) == 1
        assert history.prune(FIXED_EPOCH) == 0
