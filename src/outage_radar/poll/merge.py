"""Deterministic incident merging and provider transition detection."""

from enum import Enum

from pydantic import BaseModel, ConfigDict

from outage_radar.config.schemas import SourceFormat
from outage_radar.model.incident import Incident, ProviderState, synthetic_guid
from outage_radar.model.status import Status, impact_for_status, is_degraded_or_worse


class IncidentSource(str, Enum):
    """Where a candidate incident came from."""

    STATUSPAGE = "statuspage"
    FEED = "feed"
    SYNTHESIZED = "synthesized"


# Later sources overwrite earlier ones on the same provider|id key
MERGE_ORDER: tuple[IncidentSource, ...] = (
    IncidentSource.STATUSPAGE,
    IncidentSource.FEED,
    IncidentSource.SYNTHESIZED,
)


def source_for(source_format: SourceFormat) -> IncidentSource:
    """Merge source for a provider's wire format."""
    if source_format is SourceFormat.STATUSPAGE:
        return IncidentSource.STATUSPAGE
    return IncidentSource.FEED


def synthesize_incident(state: ProviderState) -> Incident | None:
    """Provider-level incident for a degraded state that lists none."""
    if state.incidents or not is_degraded_or_worse(state.status):
        return None
    return Incident(
        provider=state.provider,
        id=synthetic_guid(state.provider, state.status.value, state.updated_at),
        title=f"{state.name} status: {state.status.label}",
        status=state.status,
        url=state.url,
        impact=impact_for_status(state.status),
        detected_at=state.updated_at,
    )


def merge_incidents(batches: dict[IncidentSource, list[Incident]]) -> list[Incident]:
    """Merge incident batches by ``provider|id`` in MERGE_ORDER.

    Last writer wins: an incident from a later source replaces one from
    an earlier source with the same key. Output keeps first-seen order.
    """
    merged: dict[str, Incident] = {}
    for source in MERGE_ORDER:
        for incident in batches.get(source, []):
            merged[incident.key] = incident
    return list(merged.values())


class Transition(BaseModel):
    """A provider status change between two consecutive polls."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    provider: str
    previous: str
    current: str

    @property
    def is_recovery(self) -> bool:
        """Whether the provider returned to operational."""
        return self.current == Status.OPERATIONAL.value


def detect_transition(previous: str | None, state: ProviderState) -> Transition | None:
    """Compare the previous status with the new state.

    Unknown states and first sightings are not transitions.
    """
    if previous is None or state.status is Status.UNKNOWN or previous == Status.UNKNOWN.value:
        return None
    if previous == state.status.value:
        return None
    return Transition(provider=state.provider, previous=previous, current=state.status.value)
