"""Serving-ready aggregate view of all providers."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from outage_radar.model.incident import Incident, ProviderState
from outage_radar.trending import TrendingResult


class ServiceView(BaseModel):
    """One provider as shown on dashboards and in the summary API."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: Annotated[str, Field(min_length=1)]
    name: str
    status: str = "unknown"
    status_text: str = "Unknown"
    summary: str = ""
    updated_at: int = Field(default=0, ge=0)
    url: str = ""
    risk: Annotated[int, Field(ge=0, le=100)] = 0
    error: str | None = None
    incidents: list[Incident] = Field(default_factory=list)

    @classmethod
    def from_state(cls, state: ProviderState) -> "ServiceView":
        """Project a ProviderState onto the view."""
        return cls(
            id=state.provider,
            name=state.name,
            status=state.status.value,
            status_text=state.status.label,
            summary=state.message,
            updated_at=state.updated_at,
            url=state.url,
            risk=state.precursor.risk if state.precursor else 0,
            error=state.error,
            incidents=state.incidents,
        )


class Snapshot(BaseModel):
    """Cached aggregate; never authoritative.

    Attributes:
        updated_at: Epoch seconds the aggregate was built.
        services: Provider views, worst first.
        ttl_seconds: Live-cache lifetime.
        stale: True when served from the last-good fallback or empty.
        trending: Correlation result for the batch, if computed.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    updated_at: int = Field(ge=0)
    services: list[ServiceView] = Field(default_factory=list)
    ttl_seconds: int = Field(ge=0)
    stale: bool = False
    trending: TrendingResult | None = None
