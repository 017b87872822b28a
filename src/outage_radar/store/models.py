"""Data models for the SQLite state store."""

from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    """Derived severity of a stored incident event.

    - OUTAGE: Partial, major or critical outage
    - DEGRADED: Degraded service or unclassified incident
    - MAINTENANCE: Planned work or routine advisory
    - INFO: Recovery or informational notice
    """

    OUTAGE = "outage"
    DEGRADED = "degraded"
    MAINTENANCE = "maintenance"
    INFO = "info"


# Severities that earn extended retention when flagged important
RETAINED_SEVERITIES = frozenset({Severity.OUTAGE, Severity.DEGRADED})


class AlertRecord(BaseModel):
    """Throttle state for one provider.

    Attributes:
        provider: Provider id.
        last_guid: Guid of the last alerted incident; empty after operational.
        last_status: Last status observed for the provider.
        last_alert_status: Status carried by the last alert sent.
        last_alert_at: Epoch seconds of the last alert, 0 if never.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    provider: Annotated[str, Field(min_length=1)]
    last_guid: str = ""
    last_status: str = ""
    last_alert_status: str = ""
    last_alert_at: int = Field(default=0, ge=0)


class StoredIncidentEvent(BaseModel):
    """Per-incident history row keyed by ``provider|guid``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    key: Annotated[str, Field(min_length=3)]
    provider: Annotated[str, Field(min_length=1)]
    guid: Annotated[str, Field(min_length=1)]
    title: str
    status: str
    url: str = ""
    component: str | None = None
    severity: Severity
    important: bool
    impact_summary: str = ""
    first_seen: int = Field(ge=0)
    last_seen: int = Field(ge=0)
    resolved_at: int | None = None


class HistoryEvent(BaseModel):
    """Append-only ``(provider, status, timestamp)`` tuple."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    provider: Annotated[str, Field(min_length=1)]
    status: Annotated[str, Field(min_length=1)]
    timestamp: int = Field(ge=0)


class PruneResult(BaseModel):
    """Rows removed by one retention pass."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    standard_expired: int = 0
    important_expired: int = 0
    important_evicted: int = 0

    @property
    def total(self) -> int:
        """Total rows removed."""
        return self.standard_expired + self.important_expired + self.important_evicted
