"""Integration tests for a full poll cycle over a real state store."""

import json
import tempfile
import threading
from collections.abc import Generator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from outage_radar.alerts.composer import AlertComposer
from outage_radar.alerts.dispatcher import AlertDispatcher
from outage_radar.config.defaults import DEFAULT_NOISE_RULES
from outage_radar.config.schemas import ProviderConfig, ProvidersConfig, SourceFormat
from outage_radar.errors import ErrorKind
from outage_radar.fetch.client import HttpFetcher
from outage_radar.fetch.models import FetchError, FetchErrorClass, FetchOptions, FetchResult
from outage_radar.incidents.classifier import IncidentClassifier
from outage_radar.incidents.history import HistoryLog
from outage_radar.incidents.metrics import AlertMetrics
from outage_radar.incidents.store import IncidentStore
from outage_radar.model.normalizer import Normalizer
from outage_radar.model.status import Status
from outage_radar.poll.errors import PollInProgressError
from outage_radar.poll.runner import PollRunner
from outage_radar.snapshot.cache import SnapshotCache
from outage_radar.store.memory import MemoryCache
from outage_radar.store.metrics import StoreMetrics
from outage_radar.store.store import StateStore
from tests.helpers.time import FIXED_EPOCH, FakeClock


GITHUB_URL = "https://www.githubstatus.com/api/v2/summary.json"
SLACK_URL = "https://slack-status.example.com/api/v2/summary.json"
AWS_URL = "https://status.aws.amazon.com/rss/all.rss"

EMPTY_RSS = b'<?xml version="1.0"?><rss version="2.0"><channel><title>AWS</title></channel></rss>'


def _summary(indicator: str, incidents: list[dict[str, Any]] | None = None) -> bytes:
    return json.dumps(
        {
            "page": {"updated_at": "2024-06-13T11:59:00Z"},
            "status": {"indicator": indicator, "description": "Status"},
            "incidents": incidents or [],
        }
    ).encode()


def _git_incident(status: str = "investigating", **extra: str) -> dict[str, Any]:
    return {
        "id": "inc1",
        "name": "Git operations unavailable",
        "status": status,
        "impact": "critical",
        "created_at": "2024-06-13T11:30:00Z",
        **extra,
    }


def _ok(url: str, body: bytes, status: int = 200) -> FetchResult:
    return FetchResult(status=status, final_url=url, body=body)


def _timeout(url: str) -> FetchResult:
    return FetchResult(
        status=0,
        final_url=url,
        error=FetchError(error_class=FetchErrorClass.NETWORK_TIMEOUT, message="Request timed out"),
    )


PROVIDERS = ProvidersConfig(
    providers=[
        ProviderConfig(
            id="github",
            name="GitHub",
            format=SourceFormat.STATUSPAGE,
            endpoints=[GITHUB_URL],
            status_url="https://www.githubstatus.com/",
        ),
        ProviderConfig(
            id="slack",
            name="Slack",
            format=SourceFormat.STATUSPAGE,
            endpoints=[SLACK_URL],
            status_url="https://slack-status.example.com/",
        ),
        ProviderConfig(
            id="aws",
            name="AWS",
            format=SourceFormat.RSS,
            endpoints=[AWS_URL],
            status_url="https://health.aws.amazon.com/health/status",
        ),
    ]
)


class Env:
    """Wired components sharing one store, with scriptable responses."""

    def __init__(self, db_path: Path) -> None:
        StoreMetrics.reset()
        AlertMetrics.reset()
        self.clock = FakeClock()
        self.responses: dict[str, FetchResult] = {
            GITHUB_URL: _ok(GITHUB_URL, _summary("none")),
            SLACK_URL: _ok(SLACK_URL, _summary("none")),
            AWS_URL: _ok(AWS_URL, EMPTY_RSS),
        }
        self.fetcher = MagicMock(spec=HttpFetcher)
        self.fetcher.get.side_effect = self._respond
        self.mailer = MagicMock()
        self.mailer.send.return_value = True

        self.store = StateStore(db_path, clock=self.clock)
        self.store.connect()
        self.cache = MemoryCache(clock=self.clock)
        self.incidents = IncidentStore(
            self.store, IncidentClassifier(DEFAULT_NOISE_RULES), clock=self.clock
        )
        self.history = HistoryLog(self.store, clock=self.clock)
        self.snapshot = SnapshotCache(self.cache, self.store, clock=self.clock)
        dispatcher = AlertDispatcher(
            self.incidents,
            AlertComposer(provider_names={p.id: p.name for p in PROVIDERS.providers}),
            self.mailer,
            ["oncall@example.com"],
            self.store,
            clock=self.clock,
        )
        self.runner = PollRunner(
            PROVIDERS,
            self.fetcher,
            Normalizer(DEFAULT_NOISE_RULES),
            self.incidents,
            self.history,
            self.snapshot,
            dispatcher=dispatcher,
            clock=self.clock,
        )

    def _respond(self, url: str, options: FetchOptions | None = None) -> FetchResult:
        return self.responses[url]

    def subjects(self) -> list[str]:
        """Subjects of every mail sent so far."""
        return [call.args[1] for call in self.mailer.send.call_args_list]


@pytest.fixture
def env() -> Generator[Env]:
    """Fresh environment in a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        env = Env(Path(tmpdir) / "state.sqlite")
        yield env
        env.store.close()


class TestFailureIsolation:
    """Tests for per-provider failure isolation."""

    def test_timeout_marks_only_that_provider_unknown(self, env: Env) -> None:
        """Test one provider timing out leaves the others intact."""
        env.responses[SLACK_URL] = _timeout(SLACK_URL)

        result = env.runner.run(FIXED_EPOCH)

        by_id = {s.provider: s for s in result.states}
        assert by_id["slack"].status is Status.UNKNOWN
        assert by_id["slack"].error == "Request timed out"
        assert by_id["github"].status is Status.OPERATIONAL
        assert by_id["aws"].status is Status.OPERATIONAL
        assert result.providers_failed == 1
        assert [e.kind for e in result.errors] == [ErrorKind.TRANSPORT_ERROR]
        assert result.errors[0].provider_id == "slack"
        assert result.persisted

    def test_unparseable_payload_is_parse_error(self, env: Env) -> None:
        """Test a garbage body yields unknown with a parse error."""
        env.responses[GITHUB_URL] = _ok(GITHUB_URL, b"<html>oops</html>")

        result = env.runner.run(FIXED_EPOCH)

        github = next(s for s in result.states if s.provider == "github")
        assert github.status is Status.UNKNOWN
        assert [e.kind for e in result.errors] == [ErrorKind.PARSE_ERROR]

    def test_wrong_components_type_is_not_transport_error(self, env: Env) -> None:
        """Test a summary with a non-list components field still parses."""
        body = json.loads(_summary("none"))
        body["components"] = 5
        env.responses[GITHUB_URL] = _ok(GITHUB_URL, json.dumps(body).encode())

        result = env.runner.run(FIXED_EPOCH)

        github = next(s for s in result.states if s.provider == "github")
        assert github.status is Status.OPERATIONAL
        assert result.errors == []

    def test_error_page_with_indicator_is_sniffed(self, env: Env) -> None:
        """Test a 5xx carrying a summary payload is still used."""
        env.responses[GITHUB_URL] = FetchResult(
            status=503,
            final_url=GITHUB_URL,
            body=_summary("major", [_git_incident(impact="major")]),
            error=FetchError(
                error_class=FetchErrorClass.HTTP_5XX, message="HTTP 503 response", status_code=503
            ),
        )

        result = env.runner.run(FIXED_EPOCH)

        github = next(s for s in result.states if s.provider == "github")
        assert github.status is Status.PARTIAL_OUTAGE
        assert github.http_status == 503
        assert result.errors == []

    def test_store_failure_keeps_results(self, env: Env) -> None:
        """Test a dead store still produces states and a live snapshot."""
        env.responses[GITHUB_URL] = _ok(GITHUB_URL, _summary("critical", [_git_incident()]))
        env.store.close()

        result = env.runner.run(FIXED_EPOCH)

        assert not result.persisted
        assert len(result.states) == 3
        assert any(e.kind is ErrorKind.PERSISTENCE_UNAVAILABLE for e in result.errors)
        assert AlertMetrics.get_instance().persistence_failures_total == 1
        snapshot = env.snapshot.read()
        assert not snapshot.stale
        assert snapshot.services[0].id == "github"


class TestAlertFlow:
    """Tests for alerting across consecutive polls."""

    def test_outage_then_recovery(self, env: Env) -> None:
        """Test an outage alerts once and its resolution sends a recovery."""
        env.responses[GITHUB_URL] = _ok(GITHUB_URL, _summary("critical", [_git_incident()]))

        first = env.runner.run(FIXED_EPOCH)

        assert first.dispatch is not None
        assert first.dispatch.sent == ["github|github:inc1"]
        assert env.subjects() == [
            "[Outage Alert] GitHub: Major Outage — Git operations unavailable"
        ]

        repeat = env.runner.run(FIXED_EPOCH + 300)
        assert repeat.dispatch is not None
        assert repeat.dispatch.sent == []

        env.responses[GITHUB_URL] = _ok(
            GITHUB_URL,
            _summary(
                "none", [_git_incident(status="resolved", resolved_at="2024-06-13T12:09:00Z")]
            ),
        )
        recovered = env.runner.run(FIXED_EPOCH + 600)

        assert env.subjects()[-1] == "[Resolved] GitHub: Git operations unavailable"
        assert len(env.subjects()) == 2
        assert [(t.provider, t.previous, t.current) for t in recovered.transitions] == [
            ("github", "major_outage", "operational")
        ]
        assert recovered.transitions[0].is_recovery
        record = env.store.get_alert_record("github")
        assert record is not None
        assert record.last_guid == ""

    def test_operational_recovery_without_closed_entry(self, env: Env) -> None:
        """Test an incident that silently disappears still sends a recovery."""
        env.responses[GITHUB_URL] = _ok(GITHUB_URL, _summary("critical", [_git_incident()]))
        env.runner.run(FIXED_EPOCH)

        env.responses[GITHUB_URL] = _ok(GITHUB_URL, _summary("none"))
        env.runner.run(FIXED_EPOCH + 600)

        assert env.subjects()[-1] == "[Resolved] GitHub: Git operations unavailable"

    def test_undated_feed_item_alerts_once(self, env: Env) -> None:
        """Test an item without guid or date is one incident across polls."""
        env.responses[AWS_URL] = _ok(
            AWS_URL,
            b'<?xml version="1.0"?><rss version="2.0"><channel><title>AWS</title>'
            b"<item><title>Service outage in us-east-1</title>"
            b"<link>https://health.aws.amazon.com/health/status#ec2</link></item>"
            b"</channel></rss>",
        )

        for offset in (0, 2 * 3600, 4 * 3600):
            env.clock.now = FIXED_EPOCH + offset
            env.runner.run(FIXED_EPOCH + offset)

        assert len(env.subjects()) == 1
        assert len(env.store.list_incident_events(provider="aws")) == 1

    def test_maintenance_never_alerts(self, env: Env) -> None:
        """Test a maintenance-titled feed item stays silent."""
        env.responses[AWS_URL] = _ok(
            AWS_URL,
            b'<?xml version="1.0"?><rss version="2.0"><channel><title>AWS</title>'
            b"<item><title>Scheduled maintenance: database upgrade</title><guid>m1</guid>"
            b"<pubDate>Thu, 13 Jun 2024 11:30:00 +0000</pubDate></item>"
            b"</channel></rss>",
        )

        result = env.runner.run(FIXED_EPOCH)

        aws = next(s for s in result.states if s.provider == "aws")
        assert aws.status is Status.MAINTENANCE
        env.mailer.send.assert_not_called()

    def test_history_records_transitions(self, env: Env) -> None:
        """Test history gets a row per status change, not per poll."""
        env.runner.run(FIXED_EPOCH)
        env.responses[GITHUB_URL] = _ok(GITHUB_URL, _summary("critical", [_git_incident()]))
        env.runner.run(FIXED_EPOCH + 300)
        env.runner.run(FIXED_EPOCH + 600)

        report = env.history.query(["github"], days=1, now=FIXED_EPOCH + 600)

        github = report.providers["github"]
        assert github.daily_incidents == {"2024-06-13": 1}
        assert github.last_status == "major_outage"
        assert github.last_changed_at == FIXED_EPOCH + 300


class TestSingleFlight:
    """Tests for overlapping poll cycles."""

    def test_overlapping_run_rejected(self, env: Env) -> None:
        """Test a second run while one is in flight raises."""
        entered = threading.Event()
        release = threading.Event()

        def slow(url: str, options: FetchOptions | None = None) -> FetchResult:
            entered.set()
            release.wait(5)
            return env.responses[url]

        env.fetcher.get.side_effect = slow
        worker = threading.Thread(target=env.runner.run, args=(FIXED_EPOCH,))
        worker.start()
        try:
            assert entered.wait(5)
            assert env.runner.in_progress
            with pytest.raises(PollInProgressError):
                env.runner.run(FIXED_EPOCH)
        finally:
            release.set()
            worker.join(5)

        assert not env.runner.in_progress

    def test_snapshot_refreshed_each_cycle(self, env: Env) -> None:
        """Test each cycle rewrites the live snapshot."""
        env.runner.run(FIXED_EPOCH)
        env.clock.advance(60)
        env.responses[GITHUB_URL] = _ok(GITHUB_URL, _summary("minor"))

        env.runner.run(FIXED_EPOCH + 60)

        snapshot = env.snapshot.read()
        assert snapshot.updated_at == FIXED_EPOCH + 60
        assert snapshot.services[0].id == "github"
        assert snapshot.services[0].status == "degraded"
