"""Poll cycle orchestration."""

from outage_radar.poll.errors import PollInProgressError
from outage_radar.poll.merge import (
    MERGE_ORDER,
    IncidentSource,
    Transition,
    detect_transition,
    merge_incidents,
    synthesize_incident,
)
from outage_radar.poll.runner import PollResult, PollRunner, ProviderOutcome


__all__ = [
    "MERGE_ORDER",
    "IncidentSource",
    "PollInProgressError",
    "PollResult",
    "PollRunner",
    "ProviderOutcome",
    "Transition",
    "detect_transition",
    "merge_incidents",
    "synthesize_incident",
]
