"""Wires settings into a ready-to-run set of components."""

import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from outage_radar.alerts.composer import AlertComposer
from outage_radar.alerts.dispatcher import AlertDispatcher, Mailer
from outage_radar.api.feed import FeedBuilder
from outage_radar.api.read import ReadApi
from outage_radar.config.defaults import DEFAULT_NOISE_RULES, DEFAULT_PROVIDERS
from outage_radar.config.loader import load_noise_rules, load_providers
from outage_radar.config.schemas import NoiseRules, ProvidersConfig
from outage_radar.fetch.client import HttpFetcher
from outage_radar.fetch.models import FetchOptions
from outage_radar.incidents.classifier import IncidentClassifier
from outage_radar.incidents.history import HistoryLog
from outage_radar.incidents.store import IncidentStore
from outage_radar.model.incident import ProviderState
from outage_radar.model.normalizer import Normalizer
from outage_radar.poll.errors import PollInProgressError
from outage_radar.poll.runner import PollRunner
from outage_radar.precursor.crowd import CrowdReportFeed
from outage_radar.precursor.probe import PrecursorProbe
from outage_radar.settings.app import RadarSettings
from outage_radar.snapshot.cache import SnapshotCache
from outage_radar.store.memory import MemoryCache
from outage_radar.store.store import StateStore


logger = structlog.get_logger()


@dataclass
class RadarApp:
    """Connected components sharing one state store and one TTL cache."""

    settings: RadarSettings
    providers: ProvidersConfig
    fetcher: HttpFetcher
    state_store: StateStore
    cache: MemoryCache
    incidents: IncidentStore
    history: HistoryLog
    snapshot: SnapshotCache
    runner: PollRunner
    read_api: ReadApi
    feed: FeedBuilder

    def close(self) -> None:
        """Release the HTTP connection pool and the database connection."""
        self.fetcher.close()
        self.state_store.close()

    def __enter__(self) -> "RadarApp":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _providers(settings: RadarSettings) -> ProvidersConfig:
    if settings.providers_path is None:
        return DEFAULT_PROVIDERS
    return load_providers(settings.providers_path)


def _noise_rules(settings: RadarSettings) -> NoiseRules:
    if settings.noise_rules_path is None:
        return DEFAULT_NOISE_RULES
    return load_noise_rules(settings.noise_rules_path)


def build_app(
    settings: RadarSettings,
    mailer: Mailer | None = None,
    fetcher: HttpFetcher | None = None,
    clock: Callable[[], float] = time.time,
) -> RadarApp:
    """Build every component from settings.

    Args:
        settings: Application settings.
        mailer: Delivery capability; None disables alert dispatch while
            still tracking throttle state.
        fetcher: HTTP fetcher override.
        clock: Returns the current epoch seconds.

    Returns:
        RadarApp with a connected state store. ``snapshot.refresh()`` runs a
        manual poll cycle through the runner.

    Raises:
        ConfigValidationError: If a configured YAML file is invalid.
        StateStoreError: If the database cannot be opened.
    """
    providers = _providers(settings)
    noise_rules = _noise_rules(settings)
    fetcher = fetcher or HttpFetcher(
        user_agent=settings.user_agent,
        timeout_seconds=settings.fetch_timeout_seconds,
    )

    state_store = StateStore(settings.db_path, clock=clock)
    state_store.connect()
    cache = MemoryCache(clock=clock)

    classifier = IncidentClassifier(noise_rules)
    incidents = IncidentStore(
        state_store,
        classifier,
        cooldown_seconds=settings.cooldown_seconds,
        daily_cap=settings.daily_alert_cap,
        standard_retention_days=settings.standard_retention_days,
        important_retention_days=settings.important_retention_days,
        important_cap=settings.important_event_cap,
        clock=clock,
    )
    history = HistoryLog(state_store, retention_days=settings.history_retention_days, clock=clock)

    def poll_states() -> list[ProviderState]:
        # Resolved at call time; the runner is built below
        result = runner.trigger_manual()
        if result.cancelled:
            raise PollInProgressError(result.poll_id)
        return result.states

    snapshot = SnapshotCache(
        cache,
        state_store,
        ttl_seconds=settings.cache_ttl_seconds,
        source=poll_states,
        clock=clock,
    )

    crowd_feed = CrowdReportFeed(
        fetcher,
        cache,
        feed_url=settings.crowd_feed_url,
        window_minutes=settings.crowd_window_minutes,
        clock=clock,
    )
    probe = PrecursorProbe(fetcher, state_store, crowd_feed=crowd_feed, clock=clock)

    dispatcher: AlertDispatcher | None = None
    if mailer is not None:
        composer = AlertComposer(
            provider_names={p.id: p.name for p in providers.providers},
            unsubscribe_url=settings.unsubscribe_url,
        )
        dispatcher = AlertDispatcher(
            incidents,
            composer,
            mailer,
            settings.alert_recipients,
            state_store,
            digest_threshold=settings.digest_threshold,
            prealert_threshold=settings.prealert_threshold,
            clock=clock,
        )

    runner = PollRunner(
        providers,
        fetcher,
        Normalizer(noise_rules),
        incidents,
        history,
        snapshot,
        dispatcher=dispatcher,
        probe=probe,
        max_workers=settings.max_workers,
        fetch_options=FetchOptions(
            timeout_seconds=settings.fetch_timeout_seconds,
            max_redirects=settings.max_redirects,
        ),
        clock=clock,
    )

    logger.info(
        "app_built",
        component="app",
        providers=len(providers.enabled()),
        db_path=str(settings.db_path),
        alerting=dispatcher is not None,
    )
    return RadarApp(
        settings=settings,
        providers=providers,
        fetcher=fetcher,
        state_store=state_store,
        cache=cache,
        incidents=incidents,
        history=history,
        snapshot=snapshot,
        runner=runner,
        read_api=ReadApi(snapshot, history, runner=runner, clock=clock),
        feed=FeedBuilder(snapshot, classifier, clock=clock),
    )
