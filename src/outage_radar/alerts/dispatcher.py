"""Alert dispatch: eligibility, digest batching and pre-alerts."""

import time
from collections.abc import Callable
from typing import Protocol

import structlog
from pydantic import BaseModel, ConfigDict, Field

from outage_radar.alerts.composer import AlertComposer, ComposedMessage
from outage_radar.incidents.store import IncidentStore
from outage_radar.model.incident import Incident, ProviderState
from outage_radar.model.status import Status
from outage_radar.precursor.models import PrecursorResult
from outage_radar.store.protocols import KeyValueStore


logger = structlog.get_logger()

DEFAULT_DIGEST_THRESHOLD = 3
DEFAULT_PREALERT_THRESHOLD = 60
PREALERT_COOLDOWN_SECONDS = 3600
PREALERT_KEY_PREFIX = "alerts:prealert:"


class Mailer(Protocol):
    """Mail delivery capability; transport retries are its own concern."""

    def send(
        self,
        recipient: str,
        subject: str,
        text: str,
        html: str,
        headers: dict[str, str],
    ) -> bool:
        """Deliver one message; return True on success."""
        ...


class DispatchResult(BaseModel):
    """Outcome of one dispatch pass."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    eligible: list[str] = Field(default_factory=list)
    sent: list[str] = Field(default_factory=list)
    digest: bool = False
    failed: list[str] = Field(default_factory=list)


class AlertDispatcher:
    """Decides what to send for a batch of incidents and hands it to a Mailer.

    Every incident goes through ``IncidentStore.should_send``. When more
    than ``digest_threshold`` pass in one batch a single digest replaces
    the individual alerts.
    """

    def __init__(  # noqa: PLR0913
        self,
        incident_store: IncidentStore,
        composer: AlertComposer,
        mailer: Mailer,
        recipients: list[str],
        state: KeyValueStore,
        digest_threshold: int = DEFAULT_DIGEST_THRESHOLD,
        prealert_threshold: int = DEFAULT_PREALERT_THRESHOLD,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            incident_store: Eligibility and throttle store.
            composer: Message composer.
            mailer: Delivery capability.
            recipients: Addresses that receive every alert.
            state: Durable store for pre-alert throttling.
            digest_threshold: Batches larger than this become one digest.
            prealert_threshold: Minimum precursor risk for an early warning.
            clock: Returns the current epoch seconds.
        """
        self._incidents = incident_store
        self._composer = composer
        self._mailer = mailer
        self._recipients = recipients
        self._state = state
        self._digest_threshold = digest_threshold
        self._prealert_threshold = prealert_threshold
        self._clock = clock
        self._log = logger.bind(component="dispatcher")

    def dispatch(self, incidents: list[Incident], now: int | None = None) -> DispatchResult:
        """Evaluate a batch and send alerts or a digest.

        Args:
            incidents: Candidate incidents, including recovery notices.
            now: Current epoch seconds.

        Returns:
            DispatchResult listing eligible and sent incident keys.
        """
        now = int(self._clock()) if now is None else now
        eligible: list[Incident] = []
        for incident in incidents:
            if self._incidents.should_send(incident, now):
                self._incidents.push_digest_candidate(incident, now)
                eligible.append(incident)

        if not eligible:
            return DispatchResult()

        keys = [i.key for i in eligible]
        if len(eligible) > self._digest_threshold:
            delivered = self._deliver(self._composer.compose_digest(eligible))
            if delivered:
                self._incidents.record_digest(eligible, now)
                self._incidents.clear_digest_entries(keys)
            self._log.info("digest_dispatched", incidents=len(eligible), delivered=delivered)
            return DispatchResult(
                eligible=keys,
                sent=keys if delivered else [],
                digest=True,
                failed=[] if delivered else keys,
            )

        sent: list[str] = []
        failed: list[str] = []
        for incident in eligible:
            if self._deliver(self._composer.compose_incident(incident)):
                sent.append(incident.key)
            else:
                failed.append(incident.key)
        self._log.info("alerts_dispatched", eligible=len(eligible), sent=len(sent))
        return DispatchResult(eligible=keys, sent=sent, failed=failed)

    def prealert(
        self,
        state: ProviderState,
        precursor: PrecursorResult,
        now: int | None = None,
    ) -> bool:
        """Send an early warning for an operational provider at elevated risk.

        At most one per provider per hour. Independent of alert throttling.

        Returns:
            True when a pre-alert was delivered.
        """
        now = int(self._clock()) if now is None else now
        if state.status is not Status.OPERATIONAL:
            return False
        if precursor.risk < self._prealert_threshold:
            return False

        key = f"{PREALERT_KEY_PREFIX}{state.provider}"
        last_sent = int(self._state.get(key, 0) or 0)
        if now - last_sent < PREALERT_COOLDOWN_SECONDS:
            return False

        message = self._composer.compose_prealert(state.provider, precursor, state.url)
        if not self._deliver(message):
            return False
        self._state.set(key, now)
        self._log.info("prealert_sent", provider_id=state.provider, risk=precursor.risk)
        return True

    def _deliver(self, message: ComposedMessage) -> bool:
        if not self._recipients:
            self._log.info("no_recipients", subject=message.subject)
            return False
        delivered = True
        for recipient in self._recipients:
            if not self._mailer.send(
                recipient, message.subject, message.text, message.html, dict(message.headers)
            ):
                self._log.warning("mail_send_failed", subject=message.subject)
                delivered = False
        return delivered
