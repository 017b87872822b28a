"""Turn adapter output into canonical incidents and provider states."""

import structlog

from outage_radar.adapters.base import RawIncident, RawResult
from outage_radar.config.schemas import NoiseRules, ProviderConfig
from outage_radar.model.incident import (
    Incident,
    ProviderState,
    components_to_string,
    incident_guid,
)
from outage_radar.model.status import (
    Status,
    is_degraded_or_worse,
    normalize_status,
    severity_rank,
)


logger = structlog.get_logger()


class Normalizer:
    """Maps raw adapter vocabulary onto the canonical model.

    Title overrides from the noise rules force matching incidents to
    maintenance regardless of their raw status; when any override fires
    the provider's overall status is recomputed from the remaining open
    incidents.
    """

    def __init__(self, noise_rules: NoiseRules) -> None:
        """Initialize the normalizer.

        Args:
            noise_rules: Title rules, some of which force maintenance.
        """
        self._noise_rules = noise_rules

    def incident(self, provider: ProviderConfig, raw: RawIncident, now: int) -> Incident:
        """Normalize one raw incident."""
        return self._incident(provider, raw, now)[0]

    def _incident(
        self, provider: ProviderConfig, raw: RawIncident, now: int
    ) -> tuple[Incident, bool]:
        raw_status = normalize_status(raw.status, raw.impact, provider_id=provider.id)
        status = self.apply_title_override(provider.id, raw.title, raw_status)
        detected_at = raw.started_at or raw.updated_at or now
        incident = Incident(
            provider=provider.id,
            id=incident_guid(provider.id, raw.source_id, raw.title, raw.url),
            title=raw.title,
            status=status,
            url=raw.url or provider.status_url,
            component=components_to_string(raw.components),
            impact=raw.impact,
            detected_at=detected_at,
            resolved_at=raw.resolved_at if status is Status.RESOLVED else None,
        )
        overridden = status is not raw_status
        if overridden:
            logger.info(
                "title_override_applied",
                component="normalizer",
                provider_id=provider.id,
                incident_id=incident.id,
                raw_status=raw_status.value,
                status=status.value,
            )
        return incident, overridden

    def apply_title_override(self, provider_id: str, title: str, status: Status) -> Status:
        """Force maintenance for titles matching a forcing noise rule."""
        if status in {Status.RESOLVED, Status.OPERATIONAL}:
            return status
        rule = self._noise_rules.match(provider_id, title)
        if rule is not None and rule.force_maintenance:
            return Status.MAINTENANCE
        return status

    def provider_state(
        self,
        provider: ProviderConfig,
        raw: RawResult,
        now: int,
        http_status: int = 0,
    ) -> ProviderState:
        """Build the full state for one provider from a parsed payload.

        Args:
            provider: Provider directory entry.
            raw: Adapter output.
            now: Current epoch seconds.
            http_status: Final HTTP status of the fetch.

        Returns:
            A complete ProviderState; unknown when the payload was unparseable.
        """
        if not raw.parsed:
            return self.failed_state(
                provider, now, raw.parse_error or "Unparseable payload", http_status
            )

        normalized = [self._incident(provider, item, now) for item in raw.incidents]
        incidents = [incident for incident, _ in normalized]
        status = normalize_status(raw.status, provider_id=provider.id)
        if any(overridden for _, overridden in normalized):
            status = self._worst(incidents)

        message = self._message(status, incidents, raw.summary)
        return ProviderState(
            provider=provider.id,
            name=provider.name,
            status=status,
            message=message,
            updated_at=raw.updated_at or now,
            incidents=incidents,
            url=provider.status_url,
            http_status=http_status,
        )

    def closed_incidents(
        self, provider: ProviderConfig, raw: RawResult, now: int
    ) -> list[Incident]:
        """Normalize the resolved entries kept for history."""
        return [self.incident(provider, item, now) for item in raw.closed]

    def failed_state(
        self,
        provider: ProviderConfig,
        now: int,
        error: str,
        http_status: int = 0,
    ) -> ProviderState:
        """State for a provider whose fetch or parse failed."""
        return ProviderState(
            provider=provider.id,
            name=provider.name,
            status=Status.UNKNOWN,
            message="Status unavailable",
            updated_at=now,
            error=error,
            url=provider.status_url,
            http_status=http_status,
        )

    def _worst(self, incidents: list[Incident]) -> Status:
        problems = [i for i in incidents if is_degraded_or_worse(i.status)]
        if problems:
            return max(problems, key=lambda i: severity_rank(i.status)).status
        if any(i.status is Status.MAINTENANCE for i in incidents):
            return Status.MAINTENANCE
        return Status.OPERATIONAL

    def _message(self, status: Status, incidents: list[Incident], summary: str = "") -> str:
        if status is Status.OPERATIONAL:
            return summary or "All systems operational"
        ranked = sorted(incidents, key=lambda i: severity_rank(i.status), reverse=True)
        if ranked:
            return ranked[0].title
        return status.label
