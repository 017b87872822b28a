"""Canonical incident and provider-state value types."""

import hashlib
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from outage_radar.model.status import Status, severity_rank


def incident_guid(provider_id: str, source_id: str | None, *parts: str) -> str:
    """Build a stable incident id.

    Prefers ``provider:source-id``; falls back to a content hash of the
    remaining parts when the source supplies no identifier.

    Args:
        provider_id: Provider slug.
        source_id: Upstream identifier, if any.
        *parts: Content used for the hash fallback (title, link); must not
            depend on the poll time.

    Returns:
        Stable identifier for deduplication.
    """
    if source_id and source_id.strip():
        source_id = source_id.strip()
        if source_id.startswith(f"{provider_id}:"):
            return source_id
        return f"{provider_id}:{source_id}"
    digest = hashlib.sha1("|".join(parts).encode("utf-8")).hexdigest()  # noqa: S324
    return f"{provider_id}:{digest[:16]}"


def synthetic_guid(provider_id: str, status: str, updated_at: int) -> str:
    """Id for an incident synthesized from a provider-level status."""
    digest = hashlib.md5(f"{status}|{updated_at}".encode()).hexdigest()  # noqa: S324
    return f"{provider_id}:status:{digest[:12]}"


def components_to_string(names: list[str]) -> str | None:
    """Comma-join component names, dropping blanks and duplicates."""
    seen: list[str] = []
    for name in names:
        name = name.strip()
        if name and name not in seen:
            seen.append(name)
    return ", ".join(seen) or None


class Incident(BaseModel):
    """A discrete reported problem.

    Never mutated: a status change yields a new Incident with the same id.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    provider: Annotated[str, Field(min_length=1, description="Provider id")]
    id: Annotated[str, Field(min_length=1, description="Stable dedup guid")]
    title: str
    status: Status
    url: str = ""
    component: str | None = None
    impact: str | None = None
    detected_at: int = Field(ge=0, description="Epoch seconds")
    resolved_at: int | None = Field(default=None, ge=0)

    @property
    def key(self) -> str:
        """Store key ``provider|id``."""
        return f"{self.provider}|{self.id}"

    @property
    def is_resolved(self) -> bool:
        """Whether the incident reports recovery."""
        return self.status in {Status.RESOLVED, Status.OPERATIONAL}

    def with_status(self, status: Status, at: int | None = None) -> "Incident":
        """Return a copy carrying a new status.

        Args:
            status: The new canonical status.
            at: Resolution time to record when the status is a recovery.
        """
        update: dict[str, object] = {"status": status}
        if status in {Status.RESOLVED, Status.OPERATIONAL} and at is not None:
            update["resolved_at"] = at
        return self.model_copy(update=update)


class PrecursorView(BaseModel):
    """Advisory early-warning data attached to a provider state."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    risk: Annotated[int, Field(ge=0, le=100)] = 0
    summary: str = "No early signals"
    signals: list[str] = Field(default_factory=list)


class ProviderState(BaseModel):
    """Current view of one provider, rebuilt wholesale on every poll."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    provider: Annotated[str, Field(min_length=1)]
    name: str
    status: Status
    message: str = ""
    updated_at: int = Field(ge=0)
    error: str | None = None
    incidents: list[Incident] = Field(default_factory=list)
    url: str = ""
    http_status: int = 0
    precursor: PrecursorView | None = None

    @property
    def severity(self) -> int:
        """Rank of the overall status."""
        return severity_rank(self.status)

    def with_precursor(self, precursor: PrecursorView) -> "ProviderState":
        """Return a copy carrying precursor data."""
        return self.model_copy(update={"precursor": precursor})


def sort_states(states: list[ProviderState]) -> list[ProviderState]:
    """Order states worst-first, unknown ahead of healthy ones, then by name."""

    def sort_key(state: ProviderState) -> tuple[int, int, str]:
        healthy = 0 if state.status is Status.UNKNOWN else 1
        return (-state.severity, healthy, state.name.lower())

    return sorted(states, key=sort_key)
