"""Deterministic severity/importance classification with noise filtering."""

from pydantic import BaseModel, ConfigDict

from outage_radar.config.schemas import NoiseRules
from outage_radar.model.status import Status, normalize_status
from outage_radar.store.models import Severity


_SEVERITY_BY_STATUS: dict[Status, Severity] = {
    Status.CRITICAL: Severity.OUTAGE,
    Status.MAJOR_OUTAGE: Severity.OUTAGE,
    Status.PARTIAL_OUTAGE: Severity.OUTAGE,
    Status.DEGRADED: Severity.DEGRADED,
    Status.INCIDENT: Severity.DEGRADED,
    Status.MAINTENANCE: Severity.MAINTENANCE,
    Status.OPERATIONAL: Severity.INFO,
    Status.RESOLVED: Severity.INFO,
    Status.UNKNOWN: Severity.INFO,
}


class Classification(BaseModel):
    """Outcome of classifying one incident.

    Attributes:
        severity: Derived severity bucket.
        important: Whether the incident should ever notify a human.
        summary: One-line impact summary for storage and digests.
        noise_rule: Name of the noise rule that cleared ``important``, if any.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    severity: Severity
    important: bool
    summary: str
    noise_rule: str | None = None


class IncidentClassifier:
    """Maps canonical status to a severity and decides importance.

    Anything not maintenance/info is important unless a per-provider noise
    rule matches the title; those stay recorded but never page.
    """

    def __init__(self, noise_rules: NoiseRules) -> None:
        """Initialize the classifier.

        Args:
            noise_rules: Title rules that mark routine advisories.
        """
        self._noise_rules = noise_rules

    def classify(
        self, provider_key: str, title: str, status: Status | str
    ) -> Classification:
        """Classify an incident.

        Args:
            provider_key: Provider id.
            title: Incident title.
            status: Canonical status or raw status word.

        Returns:
            Classification; identical inputs always give identical output.
        """
        canonical = normalize_status(status, provider_id=provider_key)
        severity = _SEVERITY_BY_STATUS[canonical]
        important = severity not in {Severity.MAINTENANCE, Severity.INFO}
        noise_rule: str | None = None

        rule = self._noise_rules.match(provider_key, title)
        if rule is not None:
            noise_rule = rule.name
            important = False

        summary = f"{canonical.label}: {title.strip() or 'Incident'}"
        if noise_rule is not None:
            summary = f"{summary} (filtered: {noise_rule})"

        return Classification(
            severity=severity,
            important=important,
            summary=summary,
            noise_rule=noise_rule,
        )
