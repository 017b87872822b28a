"""Single-flight poll cycle with parallel fetch and failure isolation."""

import threading
import time
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

import structlog

from outage_radar.adapters.registry import adapter_for
from outage_radar.alerts.dispatcher import AlertDispatcher, DispatchResult
from outage_radar.config.schemas import ProviderConfig, ProvidersConfig, SourceFormat
from outage_radar.errors import ErrorKind, ErrorRecord
from outage_radar.fetch.client import HttpFetcher
from outage_radar.fetch.metrics import FetchMetrics
from outage_radar.fetch.models import FetchOptions, FetchResult
from outage_radar.incidents.history import HistoryLog
from outage_radar.incidents.metrics import AlertMetrics
from outage_radar.incidents.store import IncidentStore
from outage_radar.model.incident import Incident, ProviderState
from outage_radar.model.normalizer import Normalizer
from outage_radar.model.status import Status
from outage_radar.observability.logging import bind_poll_context, clear_poll_context
from outage_radar.poll.errors import PollInProgressError
from outage_radar.poll.merge import (
    IncidentSource,
    Transition,
    detect_transition,
    merge_incidents,
    source_for,
    synthesize_incident,
)
from outage_radar.precursor.models import PrecursorResult
from outage_radar.precursor.probe import PrecursorProbe
from outage_radar.snapshot.cache import SnapshotCache
from outage_radar.store.errors import StateStoreError
from outage_radar.store.metrics import StoreMetrics
from outage_radar.trending import TrendingResult, evaluate


logger = structlog.get_logger()

DEFAULT_MANUAL_WAIT_SECONDS = 30.0


@dataclass
class ProviderOutcome:
    """Result of polling one provider."""

    provider: ProviderConfig
    state: ProviderState
    closed: list[Incident] = field(default_factory=list)
    precursor: PrecursorResult | None = None
    errors: list[ErrorRecord] = field(default_factory=list)
    duration_ms: float = 0.0


@dataclass
class PollResult:
    """Result of one complete poll cycle."""

    poll_id: str
    started_at: int
    finished_at: int
    states: list[ProviderState] = field(default_factory=list)
    incidents: list[Incident] = field(default_factory=list)
    errors: list[ErrorRecord] = field(default_factory=list)
    transitions: list[Transition] = field(default_factory=list)
    trending: TrendingResult | None = None
    dispatch: DispatchResult | None = None
    cancelled: bool = False
    persisted: bool = True

    @property
    def providers_failed(self) -> int:
        """Number of providers in the unknown state."""
        return sum(1 for s in self.states if s.status is Status.UNKNOWN)


class PollRunner:
    """Runs one poll cycle across every enabled provider.

    Provides:
    - Single-flight execution (an overlapping run raises PollInProgressError)
    - Parallel fetch fan-out with bounded concurrency
    - Per-provider failure isolation into unknown states
    - Serialized persistence, alerting, history and snapshot refresh
    - Cooperative cancellation for manual refreshes
    """

    def __init__(  # noqa: PLR0913
        self,
        providers: ProvidersConfig,
        fetcher: HttpFetcher,
        normalizer: Normalizer,
        incident_store: IncidentStore,
        history: HistoryLog,
        snapshot_cache: SnapshotCache,
        dispatcher: AlertDispatcher | None = None,
        probe: PrecursorProbe | None = None,
        max_workers: int = 4,
        fetch_options: FetchOptions | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the poll runner.

        Args:
            providers: Provider directory.
            fetcher: HTTP fetcher.
            normalizer: Raw-to-canonical normalizer.
            incident_store: Classification, throttle and retention store.
            history: Coarse status history log.
            snapshot_cache: Snapshot cache refreshed after each cycle.
            dispatcher: Alert dispatcher; None disables alerting.
            probe: Early-warning probe; None disables it.
            max_workers: Maximum parallel provider fetches.
            fetch_options: Request options for provider fetches.
            clock: Returns the current epoch seconds.
        """
        self._providers = providers
        self._fetcher = fetcher
        self._normalizer = normalizer
        self._incidents = incident_store
        self._history = history
        self._snapshot = snapshot_cache
        self._dispatcher = dispatcher
        self._probe = probe
        self._max_workers = max_workers
        self._fetch_options = fetch_options or FetchOptions()
        self._clock = clock
        self._run_lock = threading.Lock()
        self._cancel = threading.Event()
        self._current_poll_id: str | None = None
        self._previous: dict[str, str] = {}
        self._log = logger.bind(component="poll_runner")

    @property
    def in_progress(self) -> bool:
        """Whether a cycle currently holds the run lock."""
        return self._run_lock.locked()

    def run(self, now: int | None = None) -> PollResult:
        """Run one poll cycle.

        Raises:
            PollInProgressError: If another cycle is running.
        """
        if not self._run_lock.acquire(blocking=False):
            raise PollInProgressError(self._current_poll_id)
        try:
            return self._execute(now)
        finally:
            self._run_lock.release()

    def cancel(self) -> None:
        """Ask the in-flight cycle to abandon its results."""
        if self.in_progress:
            self._log.info("poll_cancel_requested", poll_id=self._current_poll_id)
        self._cancel.set()

    def trigger_manual(
        self, wait_seconds: float = DEFAULT_MANUAL_WAIT_SECONDS, now: int | None = None
    ) -> PollResult:
        """Supersede any in-flight cycle and run a fresh one.

        Raises:
            PollInProgressError: If the in-flight cycle does not yield in time.
        """
        self.cancel()
        if not self._run_lock.acquire(timeout=wait_seconds):
            raise PollInProgressError(self._current_poll_id)
        try:
            return self._execute(now)
        finally:
            self._run_lock.release()

    def _execute(self, now: int | None) -> PollResult:
        self._cancel.clear()
        poll_id = str(uuid.uuid4())[:12]
        self._current_poll_id = poll_id
        bind_poll_context(poll_id)
        started_at = int(self._clock()) if now is None else now
        log = self._log.bind(poll_id=poll_id)

        try:
            providers = self._providers.enabled()
            log.info("poll_started", providers=len(providers), max_workers=self._max_workers)

            outcomes = self._fan_out(providers, started_at, log)
            if self._cancel.is_set():
                log.info("poll_cancelled", completed=len(outcomes))
                return PollResult(
                    poll_id=poll_id,
                    started_at=started_at,
                    finished_at=int(self._clock()),
                    cancelled=True,
                )

            return self._finish(poll_id, providers, outcomes, started_at, log)
        finally:
            self._current_poll_id = None
            clear_poll_context()

    def _fan_out(
        self,
        providers: list[ProviderConfig],
        now: int,
        log: structlog.stdlib.BoundLogger,
    ) -> dict[str, ProviderOutcome]:
        outcomes: dict[str, ProviderOutcome] = {}

        if self._max_workers <= 1:
            for provider in providers:
                if self._cancel.is_set():
                    break
                outcomes[provider.id] = self._isolated(provider, now, log)
            return outcomes

        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            future_to_provider = {
                executor.submit(self._poll_provider, provider, now): provider
                for provider in providers
            }
            for future in as_completed(future_to_provider):
                provider = future_to_provider[future]
                if self._cancel.is_set():
                    for pending in future_to_provider:
                        pending.cancel()
                    break
                try:
                    outcomes[provider.id] = future.result()
                except Exception as e:  # noqa: BLE001
                    outcomes[provider.id] = self._execution_failure(provider, now, e, log)
        return outcomes

    def _isolated(
        self,
        provider: ProviderConfig,
        now: int,
        log: structlog.stdlib.BoundLogger,
    ) -> ProviderOutcome:
        try:
            return self._poll_provider(provider, now)
        except Exception as e:  # noqa: BLE001
            return self._execution_failure(provider, now, e, log)

    def _execution_failure(
        self,
        provider: ProviderConfig,
        now: int,
        error: Exception,
        log: structlog.stdlib.BoundLogger,
    ) -> ProviderOutcome:
        log.error("provider_execution_error", provider_id=provider.id, error=str(error))
        message = f"Execution error: {error}"
        return ProviderOutcome(
            provider=provider,
            state=self._normalizer.failed_state(provider, now, message),
            errors=[
                ErrorRecord(
                    kind=ErrorKind.TRANSPORT_ERROR,
                    message=message,
                    provider_id=provider.id,
                )
            ],
        )

    def _poll_provider(self, provider: ProviderConfig, now: int) -> ProviderOutcome:
        """Fetch, parse and normalize one provider.

        Never raises for fetch or parse failures; those become an unknown
        state plus an error record.
        """
        start_ns = time.perf_counter_ns()
        log = self._log.bind(provider_id=provider.id, format=provider.format.value)
        errors: list[ErrorRecord] = []

        result = self._fetch(provider)
        adapter = adapter_for(provider.format)

        if result.ok:
            raw = adapter.parse(result.body, provider, now)
        elif self._sniffable(provider, result):
            # Statuspage error pages often still carry a usable indicator
            raw = adapter.parse(result.body, provider, now)
            if raw.parsed:
                log.info("status_body_sniffed", status=result.status)
        else:
            raw = None

        if raw is None or (not result.ok and not raw.parsed):
            message = result.error.message if result.error else f"HTTP {result.status}"
            errors.append(
                ErrorRecord(
                    kind=ErrorKind.TRANSPORT_ERROR,
                    message=message,
                    provider_id=provider.id,
                    details={
                        "status": result.status,
                        "error_class": result.error.error_class.value
                        if result.error
                        else None,
                    },
                )
            )
            state = self._normalizer.failed_state(provider, now, message, result.status)
            log.warning("provider_fetch_failed", status=result.status, error=message)
            return self._outcome(provider, state, [], errors, start_ns, now)

        if not raw.parsed:
            errors.append(
                ErrorRecord(
                    kind=ErrorKind.PARSE_ERROR,
                    message=raw.parse_error or "Unparseable payload",
                    provider_id=provider.id,
                )
            )

        state = self._normalizer.provider_state(provider, raw, now, result.status)
        closed = self._normalizer.closed_incidents(provider, raw, now) if raw.parsed else []
        log.info(
            "provider_complete",
            status=state.status.value,
            incidents=len(state.incidents),
            closed=len(closed),
            parse_warnings=len(raw.warnings),
        )
        return self._outcome(provider, state, closed, errors, start_ns, now)

    def _fetch(self, provider: ProviderConfig) -> FetchResult:
        """Try each endpoint in order until one succeeds."""
        first, *fallbacks = provider.endpoints
        result = self._fetcher.get(first, self._fetch_options)
        for endpoint in fallbacks:
            if result.ok or self._cancel.is_set():
                break
            result = self._fetcher.get(endpoint, self._fetch_options)
        return result

    def _sniffable(self, provider: ProviderConfig, result: FetchResult) -> bool:
        return (
            provider.format is SourceFormat.STATUSPAGE
            and result.status > 0
            and b"indicator" in result.body
        )

    def _outcome(  # noqa: PLR0913
        self,
        provider: ProviderConfig,
        state: ProviderState,
        closed: list[Incident],
        errors: list[ErrorRecord],
        start_ns: int,
        now: int,
    ) -> ProviderOutcome:
        """Attach precursor data and timing to a provider result."""
        precursor: PrecursorResult | None = None
        if self._probe is not None and not self._cancel.is_set():
            try:
                precursor = self._probe.evaluate(provider, state, now)
            except StateStoreError as e:
                self._log.warning(
                    "persistence_unavailable",
                    operation="precursor_baseline",
                    provider_id=provider.id,
                    error=str(e),
                )
        if precursor is not None:
            state = state.with_precursor(precursor.to_view())
        return ProviderOutcome(
            provider=provider,
            state=state,
            closed=closed,
            precursor=precursor,
            errors=errors,
            duration_ms=(time.perf_counter_ns() - start_ns) / 1_000_000,
        )

    def _finish(
        self,
        poll_id: str,
        providers: list[ProviderConfig],
        outcomes: dict[str, ProviderOutcome],
        now: int,
        log: structlog.stdlib.BoundLogger,
    ) -> PollResult:
        # Directory order keeps the merge deterministic
        ordered = [outcomes[p.id] for p in providers if p.id in outcomes]
        states = [o.state for o in ordered]
        errors = [e for o in ordered for e in o.errors]

        batches: dict[IncidentSource, list[Incident]] = {}
        for outcome in ordered:
            batches.setdefault(source_for(outcome.provider.format), []).extend(
                outcome.state.incidents
            )
            synthesized = synthesize_incident(outcome.state)
            if synthesized is not None:
                batches.setdefault(IncidentSource.SYNTHESIZED, []).append(synthesized)
        incidents = merge_incidents(batches)
        closed = [i for o in ordered for i in o.closed]

        transitions: list[Transition] = []
        for state in states:
            transition = detect_transition(self._previous.get(state.provider), state)
            if transition is not None:
                transitions.append(transition)
                log.info(
                    "provider_transition",
                    provider_id=transition.provider,
                    previous=transition.previous,
                    current=transition.current,
                )
            if state.status is not Status.UNKNOWN:
                self._previous[state.provider] = state.status.value

        persisted = True
        dispatch: DispatchResult | None = None
        try:
            self._incidents.persist(incidents + closed, now)
            candidates = self._alert_candidates(ordered, incidents, now)
            if self._dispatcher is not None:
                dispatch = self._dispatcher.dispatch(candidates, now)
                for outcome in ordered:
                    if outcome.precursor is not None and outcome.precursor.risk:
                        self._dispatcher.prealert(outcome.state, outcome.precursor, now)
            else:
                for candidate in candidates:
                    self._incidents.should_send(candidate, now)
            self._history.append(states, now)
            self._history.prune(now)
        except StateStoreError as e:
            persisted = False
            AlertMetrics.get_instance().record_persistence_failure()
            errors.append(
                ErrorRecord(kind=ErrorKind.PERSISTENCE_UNAVAILABLE, message=str(e))
            )
            log.error("persistence_unavailable", error=str(e))

        trending = evaluate(states, now)
        self._snapshot.store(states, trending, now)

        finished_at = int(self._clock())
        result = PollResult(
            poll_id=poll_id,
            started_at=now,
            finished_at=max(finished_at, now),
            states=states,
            incidents=incidents,
            errors=errors,
            transitions=transitions,
            trending=trending,
            dispatch=dispatch,
            persisted=persisted,
        )
        log.info(
            "poll_complete",
            providers=len(states),
            providers_failed=result.providers_failed,
            incidents=len(incidents),
            transitions=len(transitions),
            trending=trending.trending,
            alerts_sent=len(dispatch.sent) if dispatch else 0,
            persisted=persisted,
        )
        log.debug(
            "poll_metrics",
            fetch=FetchMetrics.get_instance().to_dict(),
            alerts=AlertMetrics.get_instance().to_dict(),
            store=StoreMetrics.get_instance().to_dict(),
        )
        return result

    def _alert_candidates(
        self,
        outcomes: list[ProviderOutcome],
        incidents: list[Incident],
        now: int,
    ) -> list[Incident]:
        """Open incidents plus recovery notices for previously alerted guids.

        Operational providers with nothing to recover are observed so
        their stored guid is cleared.
        """
        candidates = [i for i in incidents if not i.is_resolved]
        for outcome in outcomes:
            state = outcome.state
            if state.status is Status.UNKNOWN:
                continue
            pending = self._incidents.pending_recovery(state.provider, now)
            if pending is not None:
                closed = next((c for c in outcome.closed if c.id == pending.id), None)
                open_ids = {i.id for i in state.incidents}
                if closed is not None:
                    candidates.append(closed)
                    continue
                if state.status is Status.OPERATIONAL and pending.id not in open_ids:
                    candidates.append(pending)
                    continue
            if state.status is Status.OPERATIONAL:
                self._incidents.observe_provider(state.provider, state.status, now)
        return candidates

