"""Incident classification, alert throttling and bounded event retention."""

import threading
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from outage_radar.incidents.classifier import Classification, IncidentClassifier
from outage_radar.incidents.metrics import AlertMetrics, SuppressReason
from outage_radar.model.incident import Incident
from outage_radar.model.status import ALERTABLE_STATUSES, Status, is_worse
from outage_radar.store.models import AlertRecord, PruneResult, StoredIncidentEvent
from outage_radar.store.store import StateStore


logger = structlog.get_logger()

DEFAULT_COOLDOWN_SECONDS = 90 * 60
DEFAULT_DAILY_CAP = 5
DEFAULT_STANDARD_RETENTION_DAYS = 60
DEFAULT_IMPORTANT_RETENTION_DAYS = 365
DEFAULT_IMPORTANT_CAP = 1000
DIGEST_WINDOW_SECONDS = 15 * 60
DIGEST_WINDOW_KEY = "incidents:digest_window"

_RECOVERY_STATUSES = frozenset({Status.OPERATIONAL, Status.RESOLVED})


def _day_key(epoch: int) -> str:
    return datetime.fromtimestamp(epoch, UTC).strftime("%Y%m%d")


class IncidentStore:
    """Decides alert eligibility and keeps the per-incident event table.

    All throttle reads and writes for a provider happen under one lock,
    so the check and the record update in ``should_send`` are atomic
    with respect to other callers of the same store.
    """

    def __init__(  # noqa: PLR0913
        self,
        state_store: StateStore,
        classifier: IncidentClassifier,
        cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS,
        daily_cap: int = DEFAULT_DAILY_CAP,
        standard_retention_days: int = DEFAULT_STANDARD_RETENTION_DAYS,
        important_retention_days: int = DEFAULT_IMPORTANT_RETENTION_DAYS,
        important_cap: int = DEFAULT_IMPORTANT_CAP,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the incident store.

        Args:
            state_store: Durable SQLite store.
            classifier: Severity/importance classifier.
            cooldown_seconds: Minimum gap between alerts for one provider.
            daily_cap: Alerts per provider per UTC day; recoveries bypass it.
            standard_retention_days: Retention for ordinary events.
            important_retention_days: Retention for important outage/degraded events.
            important_cap: Maximum important events kept.
            clock: Returns the current epoch seconds.
        """
        self._store = state_store
        self._classifier = classifier
        self._cooldown_seconds = cooldown_seconds
        self._daily_cap = daily_cap
        self._standard_retention = standard_retention_days * 86400
        self._important_retention = important_retention_days * 86400
        self._important_cap = important_cap
        self._clock = clock
        self._lock = threading.RLock()
        self._metrics = AlertMetrics.get_instance()
        self._log = logger.bind(component="incident_store")

    def _now(self, now: int | None) -> int:
        return int(self._clock()) if now is None else now

    # ===== Classification =====

    def classify(
        self, provider_key: str, title: str, status: Status | str
    ) -> Classification:
        """Classify an incident; see IncidentClassifier.classify."""
        return self._classifier.classify(provider_key, title, status)

    # ===== Alert Eligibility =====

    def should_send(self, incident: Incident, now: int | None = None) -> bool:
        """Decide whether an incident may alert, recording the decision.

        Order of checks:
        1. Record the provider's last-seen status.
        2. A recovery (operational/resolved) clears the stored guid; it
           alerts only when it recovers the last-alerted guid, bypassing
           cooldown and the daily cap.
        3. Maintenance never alerts.
        4. Only alertable statuses continue.
        5. The incident must classify as important.
        6. The last-alerted guid is blocked unless its status strictly worsened.
        7. A different guid inside the cooldown window is blocked.
        8. The daily cap applies; then the record is updated and True returned.

        Args:
            incident: Incident to evaluate.
            now: Current epoch seconds.

        Returns:
            True when an alert should be sent.
        """
        now = self._now(now)
        log = self._log.bind(provider_id=incident.provider, incident_id=incident.id)
        status = incident.status

        with self._lock:
            previous = self._store.get_alert_record(incident.provider)
            record = (previous or AlertRecord(provider=incident.provider)).model_copy(
                update={"last_status": status.value}
            )

            if status in _RECOVERY_STATUSES:
                recovers_alerted = bool(record.last_guid) and record.last_guid == incident.id
                if recovers_alerted or status is Status.OPERATIONAL:
                    record = record.model_copy(update={"last_guid": ""})
                if recovers_alerted:
                    self._commit(record, status, now)
                    self._metrics.record_eligible(recovery=True)
                    log.info("alert_eligible", reason="recovery", status=status.value)
                    return True
                return self._suppress(record, SuppressReason.OPERATIONAL_RESET, log)

            if status is Status.MAINTENANCE:
                return self._suppress(record, SuppressReason.MAINTENANCE, log)

            if status not in ALERTABLE_STATUSES:
                return self._suppress(record, SuppressReason.NOT_ALERTABLE, log)

            if not self.classify(incident.provider, incident.title, status).important:
                return self._suppress(record, SuppressReason.NOT_IMPORTANT, log)

            escalation = False
            if record.last_guid and record.last_guid == incident.id:
                escalation = self._escalates(record, status)
                if not escalation:
                    return self._suppress(record, SuppressReason.DUPLICATE_GUID, log)
            elif record.last_alert_at and now - record.last_alert_at < self._cooldown_seconds:
                return self._suppress(record, SuppressReason.COOLDOWN, log)

            if self._store.get_alert_count(incident.provider, _day_key(now)) >= self._daily_cap:
                return self._suppress(record, SuppressReason.DAILY_CAP, log)

            record = record.model_copy(update={"last_guid": incident.id})
            self._commit(record, status, now)

        self._metrics.record_eligible(escalation=escalation)
        log.info(
            "alert_eligible",
            reason="escalation" if escalation else "new_incident",
            status=status.value,
        )
        return True

    def observe_provider(
        self, provider_id: str, status: Status, now: int | None = None
    ) -> None:
        """Record a provider-level status; operational resets the guid."""
        del now
        with self._lock:
            previous = self._store.get_alert_record(provider_id)
            record = (previous or AlertRecord(provider=provider_id)).model_copy(
                update={"last_status": status.value}
            )
            if status is Status.OPERATIONAL:
                record = record.model_copy(update={"last_guid": ""})
            if record != previous:
                self._store.save_alert_record(record)

    def pending_recovery(self, provider_id: str, now: int | None = None) -> Incident | None:
        """Build the recovery notice for a provider's last-alerted incident.

        Returns:
            A resolved Incident carrying the last-alerted guid, or None when
            nothing is awaiting recovery.
        """
        now = self._now(now)
        record = self._store.get_alert_record(provider_id)
        if record is None or not record.last_guid:
            return None
        event = self._store.get_incident_event(f"{provider_id}|{record.last_guid}")
        return Incident(
            provider=provider_id,
            id=record.last_guid,
            title=event.title if event else "Incident resolved",
            status=Status.RESOLVED,
            url=event.url if event else "",
            component=event.component if event else None,
            detected_at=event.first_seen if event else now,
            resolved_at=now,
        )

    def _escalates(self, record: AlertRecord, status: Status) -> bool:
        try:
            alerted = Status(record.last_alert_status)
        except ValueError:
            return False
        return is_worse(status, alerted)

    def _commit(self, record: AlertRecord, status: Status, now: int) -> None:
        record = record.model_copy(
            update={"last_alert_at": now, "last_alert_status": status.value}
        )
        self._store.commit_alert(record, _day_key(now))

    def _suppress(
        self,
        record: AlertRecord,
        reason: SuppressReason,
        log: structlog.stdlib.BoundLogger,
    ) -> bool:
        self._store.save_alert_record(record)
        self._metrics.record_suppressed(reason)
        log.debug("alert_suppressed", reason=reason.value)
        return False

    # ===== Persistence & Retention =====

    def persist(self, incidents: list[Incident], now: int | None = None) -> PruneResult:
        """Upsert incidents into the event table, then prune.

        Args:
            incidents: Incidents seen this cycle, open or closed.
            now: Current epoch seconds.

        Returns:
            What the retention pass removed.
        """
        now = self._now(now)
        events: dict[str, StoredIncidentEvent] = {}
        for incident in incidents:
            classification = self.classify(incident.provider, incident.title, incident.status)
            events[incident.key] = StoredIncidentEvent(
                key=incident.key,
                provider=incident.provider,
                guid=incident.id,
                title=incident.title,
                status=incident.status.value,
                url=incident.url,
                component=incident.component,
                severity=classification.severity,
                important=classification.important,
                impact_summary=classification.summary,
                first_seen=now,
                last_seen=now,
                resolved_at=incident.resolved_at,
            )

        with self._lock:
            inserted = self._store.upsert_incident_events(events.values())
        self._log.info("incidents_persisted", total=len(events), inserted=inserted)
        return self.prune(now)

    def prune(self, now: int | None = None) -> PruneResult:
        """Apply age and cap retention; idempotent for a fixed ``now``."""
        now = self._now(now)
        with self._lock:
            result = self._store.prune_incident_events(
                standard_cutoff=now - self._standard_retention,
                important_cutoff=now - self._important_retention,
                important_cap=self._important_cap,
            )
            yesterday = datetime.fromtimestamp(now, UTC) - timedelta(days=1)
            self._store.prune_alert_counts(yesterday.strftime("%Y%m%d"))
        if result.total:
            self._log.info(
                "incident_events_pruned",
                standard_expired=result.standard_expired,
                important_expired=result.important_expired,
                important_evicted=result.important_evicted,
            )
        return result

    # ===== Digest Window =====

    def push_digest_candidate(
        self, incident: Incident, now: int | None = None
    ) -> list[dict[str, Any]]:
        """Add an incident to the rolling 15-minute digest window.

        Returns:
            The window after expiring old entries.
        """
        now = self._now(now)
        with self._lock:
            window: list[dict[str, Any]] = self._store.get(DIGEST_WINDOW_KEY, [])
            window.append(
                {
                    "id": incident.key,
                    "provider": incident.provider,
                    "title": incident.title,
                    "status": incident.status.value,
                    "url": incident.url,
                    "ts": now,
                }
            )
            window = [e for e in window if now - int(e.get("ts", 0)) <= DIGEST_WINDOW_SECONDS]
            self._store.set(DIGEST_WINDOW_KEY, window)
        return window

    def clear_digest_entries(self, keys: list[str]) -> None:
        """Remove entries already delivered in a digest."""
        drop = set(keys)
        with self._lock:
            window: list[dict[str, Any]] = self._store.get(DIGEST_WINDOW_KEY, [])
            window = [e for e in window if e.get("id") and e["id"] not in drop]
            self._store.set(DIGEST_WINDOW_KEY, window)

    def record_digest(self, incidents: list[Incident], now: int | None = None) -> None:
        """Stamp alert records for incidents delivered together in a digest."""
        now = self._now(now)
        with self._lock:
            for incident in incidents:
                record = self._store.get_alert_record(incident.provider) or AlertRecord(
                    provider=incident.provider
                )
                self._store.save_alert_record(
                    record.model_copy(
                        update={
                            "last_alert_at": now,
                            "last_alert_status": incident.status.value,
                        }
                    )
                )
        self._metrics.record_digest()
