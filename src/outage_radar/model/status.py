"""Canonical status taxonomy and the single raw-word normalizer."""

from enum import Enum

import structlog


logger = structlog.get_logger()


class Status(str, Enum):
    """Canonical status of an incident or provider.

    UNKNOWN is reserved for ProviderState when a fetch or parse fails;
    incidents never carry it.
    """

    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    PARTIAL_OUTAGE = "partial_outage"
    MAJOR_OUTAGE = "major_outage"
    MAINTENANCE = "maintenance"
    CRITICAL = "critical"
    RESOLVED = "resolved"
    INCIDENT = "incident"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        """Human-readable label."""
        return _LABELS[self]


_LABELS: dict[Status, str] = {
    Status.OPERATIONAL: "Operational",
    Status.DEGRADED: "Degraded",
    Status.PARTIAL_OUTAGE: "Partial Outage",
    Status.MAJOR_OUTAGE: "Major Outage",
    Status.MAINTENANCE: "Maintenance",
    Status.CRITICAL: "Critical",
    Status.RESOLVED: "Resolved",
    Status.INCIDENT: "Incident",
    Status.UNKNOWN: "Unknown",
}

# Vocabulary seen across Statuspage indicators, incident lifecycle words,
# component states and feed keywords.
_STATUS_WORDS: dict[str, Status] = {
    "operational": Status.OPERATIONAL,
    "none": Status.OPERATIONAL,
    "ok": Status.OPERATIONAL,
    "up": Status.OPERATIONAL,
    "resolved": Status.RESOLVED,
    "postmortem": Status.RESOLVED,
    "completed": Status.RESOLVED,
    "maintenance": Status.MAINTENANCE,
    "under_maintenance": Status.MAINTENANCE,
    "scheduled": Status.MAINTENANCE,
    "minor": Status.DEGRADED,
    "degraded": Status.DEGRADED,
    "degraded_performance": Status.DEGRADED,
    "investigating": Status.DEGRADED,
    "identified": Status.DEGRADED,
    "monitoring": Status.DEGRADED,
    "in_progress": Status.DEGRADED,
    "verifying": Status.DEGRADED,
    "warning": Status.DEGRADED,
    "disruption": Status.DEGRADED,
    "partial": Status.PARTIAL_OUTAGE,
    "partial_outage": Status.PARTIAL_OUTAGE,
    "major": Status.PARTIAL_OUTAGE,
    "major_outage": Status.MAJOR_OUTAGE,
    "outage": Status.MAJOR_OUTAGE,
    "down": Status.MAJOR_OUTAGE,
    "critical": Status.MAJOR_OUTAGE,
    "incident": Status.INCIDENT,
}

# Impact words carried next to a lifecycle word; they win when present.
_IMPACT_WORDS: dict[str, Status] = {
    "critical": Status.MAJOR_OUTAGE,
    "major": Status.PARTIAL_OUTAGE,
    "minor": Status.DEGRADED,
    "maintenance": Status.MAINTENANCE,
}

_SEVERITY_RANK: dict[Status, int] = {
    Status.OPERATIONAL: 0,
    Status.RESOLVED: 0,
    Status.MAINTENANCE: 0,
    Status.UNKNOWN: 0,
    Status.INCIDENT: 1,
    Status.DEGRADED: 1,
    Status.PARTIAL_OUTAGE: 2,
    Status.MAJOR_OUTAGE: 3,
    Status.CRITICAL: 4,
}

ALERTABLE_STATUSES = frozenset(
    {
        Status.INCIDENT,
        Status.DEGRADED,
        Status.PARTIAL_OUTAGE,
        Status.MAJOR_OUTAGE,
        Status.CRITICAL,
    }
)

MAJOR_STATUSES = frozenset({Status.MAJOR_OUTAGE, Status.CRITICAL})


def _key(raw: str) -> str:
    return raw.strip().lower().replace("-", "_").replace(" ", "_")


def normalize_status(
    raw: str | Status | None,
    impact: str | None = None,
    provider_id: str | None = None,
) -> Status:
    """Map any raw status word onto the canonical taxonomy.

    Canonical values pass through unchanged. A recognized impact word
    overrides an unresolved lifecycle word. Unmapped words become
    DEGRADED so new vocabulary can never hide a live problem.

    Args:
        raw: Raw status or indicator word from a source.
        impact: Optional source-native impact word.
        provider_id: Provider for logging ambiguous words.

    Returns:
        Canonical status; never UNKNOWN.
    """
    if isinstance(raw, Status):
        return raw if raw is not Status.UNKNOWN else Status.DEGRADED

    base = _STATUS_WORDS.get(_key(raw)) if raw else None
    if base in {Status.RESOLVED, Status.OPERATIONAL, Status.MAINTENANCE}:
        return base

    if impact:
        from_impact = _IMPACT_WORDS.get(_key(impact))
        if from_impact is not None:
            return from_impact

    if base is not None:
        return base

    logger.warning(
        "classification_ambiguous",
        component="normalizer",
        provider_id=provider_id,
        raw_status=raw,
        impact=impact,
        defaulted_to=Status.DEGRADED.value,
    )
    return Status.DEGRADED


def severity_rank(status: Status) -> int:
    """Rank for escalation comparisons; higher is worse."""
    return _SEVERITY_RANK[status]


def is_worse(candidate: Status, baseline: Status) -> bool:
    """Check whether ``candidate`` is strictly more severe than ``baseline``."""
    return severity_rank(candidate) > severity_rank(baseline)


def is_degraded_or_worse(status: Status) -> bool:
    """Check whether a status represents an active problem."""
    return status in ALERTABLE_STATUSES


def impact_for_status(status: Status) -> str:
    """Derive a Statuspage-style impact word from a canonical status."""
    if status in MAJOR_STATUSES:
        return "critical"
    if status is Status.PARTIAL_OUTAGE:
        return "major"
    if status in {Status.MAINTENANCE, Status.RESOLVED, Status.OPERATIONAL}:
        return "none"
    return "minor"
