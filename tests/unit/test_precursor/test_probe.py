"""Tests for the early-warning probe."""

from unittest.mock import MagicMock

import pytest

from outage_radar.config.schemas import ProviderConfig, SourceFormat
from outage_radar.fetch.client import HttpFetcher
from outage_radar.fetch.models import FetchError, FetchErrorClass, FetchResult
from outage_radar.model.incident import ProviderState
from outage_radar.model.status import Status
from outage_radar.precursor.crowd import CrowdReportFeed
from outage_radar.precursor.models import CrowdReport
from outage_radar.precursor.probe import BASELINE_KEY_PREFIX, PrecursorProbe
from outage_radar.store.memory import MemoryCache
from tests.helpers.time import FIXED_EPOCH, FakeClock


PROBE_URL = "https://status.zscaler.com/"


@pytest.fixture
def provider() -> ProviderConfig:
    """Provider with a probe URL."""
    return ProviderConfig(
        id="zscaler",
        name="Zscaler",
        format=SourceFormat.STATUSPAGE,
        endpoints=["https://trust.zscaler.com/api/v2/summary.json"],
        status_url="https://trust.zscaler.com/",
        probe_url=PROBE_URL,
    )


@pytest.fixture
def fetcher() -> MagicMock:
    """Mock fetcher."""
    return MagicMock(spec=HttpFetcher)


@pytest.fixture
def baselines() -> MemoryCache:
    """Baseline store."""
    return MemoryCache(clock=FakeClock())


def _ok(elapsed_ms: float) -> FetchResult:
    return FetchResult(status=200, final_url=PROBE_URL, elapsed_ms=elapsed_ms)


def _failed(status: int = 503) -> FetchResult:
    return FetchResult(
        status=status,
        final_url=PROBE_URL,
        error=FetchError(
            error_class=FetchErrorClass.HTTP_5XX,
            message=f"HTTP {status} response",
            status_code=status,
        ),
        elapsed_ms=120,
    )


class TestLatencySignal:
    """Tests for the latency baseline and spike signal."""

    def test_first_sample_seeds_baseline(
        self, provider: ProviderConfig, fetcher: MagicMock, baselines: MemoryCache
    ) -> None:
        """Test the first probe sets the baseline without signalling."""
        fetcher.get.return_value = _ok(100)
        probe = PrecursorProbe(fetcher, baselines)

        result = probe.evaluate(provider, now=FIXED_EPOCH)

        assert result.risk == 0
        assert result.signals == []
        assert result.summary == "No early signals"
        assert result.measures.latency_ms == 100
        assert result.measures.baseline_ms == 100
        assert baselines.get(f"{BASELINE_KEY_PREFIX}zscaler") == {"avg": 100.0, "n": 1}

    def test_spike_compares_previous_baseline(
        self, provider: ProviderConfig, fetcher: MagicMock, baselines: MemoryCache
    ) -> None:
        """Test a sample above 1.8x the prior baseline is a spike."""
        probe = PrecursorProbe(fetcher, baselines)
        fetcher.get.return_value = _ok(100)
        probe.evaluate(provider, now=FIXED_EPOCH)

        fetcher.get.return_value = _ok(200)
        result = probe.evaluate(provider, now=FIXED_EPOCH + 60)

        assert result.risk == 40
        assert result.signals == ["latency_spike"]
        assert result.measures.baseline_ms == 120
        assert result.summary == "Early warning: latency_spike"

    def test_small_increase_is_not_spike(
        self, provider: ProviderConfig, fetcher: MagicMock, baselines: MemoryCache
    ) -> None:
        """Test latency within the factor does not signal."""
        probe = PrecursorProbe(fetcher, baselines)
        fetcher.get.return_value = _ok(100)
        probe.evaluate(provider, now=FIXED_EPOCH)

        fetcher.get.return_value = _ok(170)
        assert probe.evaluate(provider, now=FIXED_EPOCH + 60).risk == 0

    def test_failed_probe_signals_and_keeps_baseline(
        self, provider: ProviderConfig, fetcher: MagicMock, baselines: MemoryCache
    ) -> None:
        """Test failures add http_errors and leave the baseline alone."""
        probe = PrecursorProbe(fetcher, baselines)
        fetcher.get.return_value = _ok(100)
        probe.evaluate(provider, now=FIXED_EPOCH)

        fetcher.get.return_value = _failed()
        result = probe.evaluate(provider, now=FIXED_EPOCH + 60)

        assert result.signals == ["http_errors"]
        assert result.risk == 40
        assert result.measures.http_ok is False
        assert result.measures.http_status == 503
        assert baselines.get(f"{BASELINE_KEY_PREFIX}zscaler") == {"avg": 100.0, "n": 1}

    def test_head_rejected_retries_get(
        self, provider: ProviderConfig, fetcher: MagicMock, baselines: MemoryCache
    ) -> None:
        """Test HEAD rejected with 405 is retried as GET."""
        fetcher.get.side_effect = [_failed(405), _ok(80)]
        probe = PrecursorProbe(fetcher, baselines)

        result = probe.evaluate(provider, now=FIXED_EPOCH)

        assert fetcher.get.call_count == 2
        assert fetcher.get.call_args_list[0].args[1].method == "HEAD"
        assert fetcher.get.call_args_list[1].args[1].method == "GET"
        assert result.measures.http_ok is True

    def test_no_probe_url_skips_request(
        self, provider: ProviderConfig, fetcher: MagicMock, baselines: MemoryCache
    ) -> None:
        """Test providers without a probe URL are never probed."""
        provider = provider.model_copy(update={"probe_url": None})

        result = PrecursorProbe(fetcher, baselines).evaluate(provider, now=FIXED_EPOCH)

        fetcher.get.assert_not_called()
        assert result.measures.latency_ms is None


class TestStateAndCrowdSignals:
    """Tests for the component and crowd-report signals."""

    def test_component_degraded_hint(
        self, provider: ProviderConfig, fetcher: MagicMock, baselines: MemoryCache
    ) -> None:
        """Test an operational page mentioning degraded components signals."""
        provider = provider.model_copy(update={"probe_url": None})
        state = ProviderState(
            provider="zscaler",
            name="Zscaler",
            status=Status.OPERATIONAL,
            message="All good; Affected: ZIA (degraded performance)",
            updated_at=FIXED_EPOCH,
        )

        result = PrecursorProbe(fetcher, baselines).evaluate(provider, state, FIXED_EPOCH)

        assert result.signals == ["component_degraded"]
        assert result.risk == 20

    def test_crowd_reports_fresh_and_stale(
        self, provider: ProviderConfig, fetcher: MagicMock, baselines: MemoryCache
    ) -> None:
        """Test fresh reports weigh more than older ones."""
        provider = provider.model_copy(update={"probe_url": None})
        crowd = MagicMock(spec=CrowdReportFeed)
        crowd.matches.return_value = [
            CrowdReport(title="Zscaler down", timestamp=FIXED_EPOCH - 600, age_minutes=10)
        ]
        probe = PrecursorProbe(fetcher, baselines, crowd_feed=crowd)

        fresh = probe.evaluate(provider, now=FIXED_EPOCH)
        crowd.matches.return_value = [
            CrowdReport(title="Zscaler down", timestamp=FIXED_EPOCH - 3600, age_minutes=60)
        ]
        stale = probe.evaluate(provider, now=FIXED_EPOCH)

        assert fresh.risk == 30
        assert fresh.measures.report_count == 1
        assert fresh.measures.report_age_minutes == 10
        assert stale.risk == 15

    def test_signals_sum(
        self, provider: ProviderConfig, fetcher: MagicMock, baselines: MemoryCache
    ) -> None:
        """Test weights add up across signals and view mirrors the result."""
        fetcher.get.return_value = _failed()
        crowd = MagicMock(spec=CrowdReportFeed)
        crowd.matches.return_value = [
            CrowdReport(title="zscaler outage", timestamp=FIXED_EPOCH, age_minutes=0)
        ]
        state = ProviderState(
            provider="zscaler",
            name="Zscaler",
            status=Status.OPERATIONAL,
            message="Partial disruption in EU",
            updated_at=FIXED_EPOCH,
        )

        result = PrecursorProbe(fetcher, baselines, crowd_feed=crowd).evaluate(
            provider, state, FIXED_EPOCH
        )

        assert result.signals == ["http_errors", "component_degraded", "crowd_reports"]
        assert result.risk == 90
        view = result.to_view()
        assert view.risk == 90
        assert view.signals == result.signals
