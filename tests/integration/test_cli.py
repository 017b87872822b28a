"""Integration tests for the CLI commands that read stored state."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from outage_radar import __version__
from outage_radar.cli.main import cli
from outage_radar.model.incident import Incident, ProviderState
from outage_radar.model.status import Status
from outage_radar.snapshot.cache import SnapshotCache
from outage_radar.store.memory import MemoryCache
from outage_radar.store.metrics import StoreMetrics
from outage_radar.store.models import HistoryEvent
from outage_radar.store.store import StateStore
from tests.helpers.time import FIXED_EPOCH


@pytest.fixture
def db_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Database path inside an isolated working directory."""
    monkeypatch.chdir(tmp_path)
    StoreMetrics.reset()
    return tmp_path / "state.sqlite"


def _seed(db_path: Path) -> None:
    with StateStore(db_path) as store:
        SnapshotCache(MemoryCache(), store).store(
            [
                ProviderState(
                    provider="github",
                    name="GitHub",
                    status=Status.MAJOR_OUTAGE,
                    updated_at=FIXED_EPOCH,
                    incidents=[
                        Incident(
                            provider="github",
                            id="github:inc1",
                            title="Git operations unavailable",
                            status=Status.MAJOR_OUTAGE,
                            detected_at=FIXED_EPOCH,
                        )
                    ],
                )
            ],
            now=FIXED_EPOCH,
        )
        store.append_history(
            [HistoryEvent(provider="github", status="major_outage", timestamp=FIXED_EPOCH)]
        )


class TestCli:
    """Tests for the CLI surface."""

    def test_version(self) -> None:
        """Test --version prints the package version."""
        result = CliRunner().invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_snapshot_empty(self, db_path: Path) -> None:
        """Test an empty database reports no snapshot."""
        result = CliRunner().invoke(cli, ["snapshot", "--state", str(db_path)])

        assert result.exit_code == 0
        assert "(stale)" in result.output
        assert "No snapshot available" in result.output

    def test_snapshot_serves_last_good(self, db_path: Path) -> None:
        """Test a fresh process serves the stored last-good snapshot as stale."""
        _seed(db_path)

        result = CliRunner().invoke(cli, ["snapshot", "--state", str(db_path), "--json"])

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["stale"] is True
        assert payload["providers"][0]["id"] == "github"

    def test_snapshot_lite(self, db_path: Path) -> None:
        """Test lite output is only the trending flag."""
        _seed(db_path)

        result = CliRunner().invoke(cli, ["snapshot", "--state", str(db_path), "--lite"])

        assert json.loads(result.output) == {"trending": False}

    def test_history(self, db_path: Path) -> None:
        """Test history lists stored transitions."""
        _seed(db_path)

        result = CliRunner().invoke(
            cli, ["history", "--state", str(db_path), "--provider", "github", "--json"]
        )

        assert result.exit_code == 0
        report = json.loads(result.output)
        assert report["providers"]["github"]["last_status"] == "major_outage"

    def test_feed(self, db_path: Path) -> None:
        """Test the feed command renders RSS from the stored snapshot."""
        _seed(db_path)

        result = CliRunner().invoke(cli, ["feed", "--state", str(db_path)])

        assert result.exit_code == 0
        assert "<rss" in result.output
        assert "GitHub - Git operations unavailable (Major Outage)" in result.output

    def test_invalid_providers_file(self, db_path: Path, tmp_path: Path) -> None:
        """Test an invalid providers file exits with an error."""
        bad = tmp_path / "providers.yaml"
        bad.write_text("providers:\n  - id: Not Valid\n", encoding="utf-8")

        result = CliRunner().invoke(
            cli, ["poll", "--state", str(db_path), "--providers", str(bad), "--no-json-logs"]
        )

        assert result.exit_code == 1
        assert "Configuration validation failed" in result.output
