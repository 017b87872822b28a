"""Canonical incident model and normalizer."""

from outage_radar.model.incident import (
    Incident,
    PrecursorView,
    ProviderState,
    components_to_string,
    incident_guid,
    sort_states,
    synthetic_guid,
)
from outage_radar.model.status import (
    ALERTABLE_STATUSES,
    MAJOR_STATUSES,
    Status,
    impact_for_status,
    is_degraded_or_worse,
    is_worse,
    normalize_status,
    severity_rank,
)


__all__ = [
    "ALERTABLE_STATUSES",
    "MAJOR_STATUSES",
    "Incident",
    "PrecursorView",
    "ProviderState",
    "Status",
    "components_to_string",
    "impact_for_status",
    "incident_guid",
    "is_degraded_or_worse",
    "is_worse",
    "normalize_status",
    "severity_rank",
    "sort_states",
    "synthetic_guid",
]
