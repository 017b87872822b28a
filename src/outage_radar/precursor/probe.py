"""Latency-baseline and crowd-report early-warning probe."""

import time
from collections.abc import Callable

import structlog

from outage_radar.config.schemas import ProviderConfig
from outage_radar.fetch.client import HttpFetcher
from outage_radar.fetch.constants import (
    HTTP_STATUS_FORBIDDEN,
    HTTP_STATUS_METHOD_NOT_ALLOWED,
    HTTP_STATUS_UNAUTHORIZED,
)
from outage_radar.fetch.models import FetchOptions, FetchResult
from outage_radar.model.incident import ProviderState
from outage_radar.model.status import Status
from outage_radar.precursor.crowd import CrowdReportFeed
from outage_radar.precursor.models import RISK_MAX, PrecursorMeasures, PrecursorResult
from outage_radar.store.protocols import KeyValueStore


logger = structlog.get_logger()

BASELINE_KEY_PREFIX = "precursor:baseline:"
EWMA_ALPHA = 0.2
LATENCY_SPIKE_FACTOR = 1.8
FRESH_REPORT_MINUTES = 30

LATENCY_SPIKE_RISK = 40
HTTP_ERROR_RISK = 40
COMPONENT_DEGRADED_RISK = 20
FRESH_REPORT_RISK = 30
STALE_REPORT_RISK = 15

# HEAD is retried as GET for these
HEAD_REJECTED_STATUSES = frozenset(
    {HTTP_STATUS_UNAUTHORIZED, HTTP_STATUS_FORBIDDEN, HTTP_STATUS_METHOD_NOT_ALLOWED}
)

_DEGRADED_HINTS = ("degrad", "partial")


class PrecursorProbe:
    """Scores pre-incident anomalies for a provider on a 0-100 scale.

    Signals and weights:
    - latency_spike (+40): probe latency above 1.8x the EWMA baseline
    - http_errors (+40): the probe request failed
    - component_degraded (+20): provider reads operational but its
      summary mentions degraded or partial components
    - crowd_reports (+30 fresh, +15 older): crowd reports mention the
      provider within the recency window

    The result is advisory and never feeds alert eligibility.
    """

    def __init__(
        self,
        fetcher: HttpFetcher,
        baselines: KeyValueStore,
        crowd_feed: CrowdReportFeed | None = None,
        timeout_seconds: float = 5.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the probe.

        Args:
            fetcher: HTTP fetcher for probe requests.
            baselines: Durable store for per-provider latency baselines.
            crowd_feed: Optional crowd-report feed.
            timeout_seconds: Probe request timeout.
            clock: Returns the current epoch seconds.
        """
        self._fetcher = fetcher
        self._baselines = baselines
        self._crowd_feed = crowd_feed
        self._timeout_seconds = max(2.0, timeout_seconds)
        self._clock = clock
        self._log = logger.bind(component="precursor")

    def evaluate(
        self,
        provider: ProviderConfig,
        state: ProviderState | None = None,
        now: int | None = None,
    ) -> PrecursorResult:
        """Evaluate early-warning signals for one provider.

        Args:
            provider: Provider directory entry.
            state: Current provider state, if already known.
            now: Current epoch seconds.

        Returns:
            PrecursorResult with risk, signals and raw measurements.
        """
        now = int(self._clock()) if now is None else now
        risk = 0
        signals: list[str] = []
        measures: dict[str, object] = {}

        if provider.probe_url:
            result = self._probe(provider.probe_url)
            latency_ms = round(result.elapsed_ms)
            previous = self._baseline(provider.id)
            baseline = self._update_baseline(provider.id, latency_ms, result.ok, previous)
            measures.update(
                latency_ms=latency_ms,
                baseline_ms=baseline,
                http_ok=result.ok,
                http_status=result.status,
            )
            if (
                result.ok
                and previous is not None
                and latency_ms > round(previous * LATENCY_SPIKE_FACTOR)
            ):
                risk += LATENCY_SPIKE_RISK
                signals.append("latency_spike")
            if not result.ok:
                risk += HTTP_ERROR_RISK
                signals.append("http_errors")

        if state is not None and state.status is Status.OPERATIONAL:
            text = state.message.lower()
            if any(hint in text for hint in _DEGRADED_HINTS):
                risk += COMPONENT_DEGRADED_RISK
                signals.append("component_degraded")

        if self._crowd_feed is not None:
            reports = self._crowd_feed.matches(provider, now)
            if reports:
                freshest = min(r.age_minutes or 0 for r in reports)
                measures.update(report_count=len(reports), report_age_minutes=freshest)
                risk += (
                    FRESH_REPORT_RISK
                    if freshest <= FRESH_REPORT_MINUTES
                    else STALE_REPORT_RISK
                )
                signals.append("crowd_reports")

        summary = f"Early warning: {', '.join(signals)}" if signals else "No early signals"
        precursor = PrecursorResult(
            provider=provider.id,
            risk=min(RISK_MAX, risk),
            signals=signals,
            measures=PrecursorMeasures.model_validate(measures),
            summary=summary,
            updated_at=now,
        )
        if precursor.risk:
            self._log.info(
                "precursor_signals",
                provider_id=provider.id,
                risk=precursor.risk,
                signals=signals,
            )
        return precursor

    def _probe(self, url: str) -> FetchResult:
        result = self._fetcher.get(
            url, FetchOptions(method="HEAD", timeout_seconds=self._timeout_seconds)
        )
        if result.status in HEAD_REJECTED_STATUSES:
            result = self._fetcher.get(
                url, FetchOptions(method="GET", timeout_seconds=self._timeout_seconds)
            )
        return result

    def _baseline(self, provider_id: str) -> int | None:
        entry = self._baselines.get(f"{BASELINE_KEY_PREFIX}{provider_id}")
        if not isinstance(entry, dict) or entry.get("avg") is None:
            return None
        return round(float(entry["avg"]))

    def _update_baseline(
        self,
        provider_id: str,
        latency_ms: int,
        http_ok: bool,
        previous: int | None,
    ) -> int | None:
        """Fold a sample into the EWMA; failed or empty samples leave it unchanged."""
        key = f"{BASELINE_KEY_PREFIX}{provider_id}"
        if not http_ok or latency_ms <= 0:
            return previous

        entry = self._baselines.get(key) or {}
        count = int(entry.get("n", 0))
        if entry.get("avg") is None or count == 0:
            avg = float(latency_ms)
            count = 1
        else:
            avg = (1.0 - EWMA_ALPHA) * float(entry["avg"]) + EWMA_ALPHA * latency_ms
            count += 1

        self._baselines.set(key, {"avg": avg, "n": count})
        return round(avg)
