"""Cross-provider correlation of simultaneous degradations."""

from pydantic import BaseModel, ConfigDict, Field

from outage_radar.model.incident import ProviderState
from outage_radar.model.status import (
    MAJOR_STATUSES,
    Status,
    is_degraded_or_worse,
)


CORE_CLOUD_PROVIDERS = ("aws", "azure", "gcp")
RECENT_CLOUD_INCIDENT_SECONDS = 6 * 3600
MAX_SIGNALS = 6
HTTP_ERROR_PROVIDER_THRESHOLD = 3

_SPECIAL_LABELS = {"aws": "AWS", "gcp": "GCP", "azure": "Azure"}


class TrendingResult(BaseModel):
    """Outcome of one correlation pass."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    trending: bool = False
    signals: list[str] = Field(default_factory=list)
    generated_at: int = Field(ge=0)


def label_for(provider_id: str) -> str:
    """Human label for a provider slug."""
    if provider_id in _SPECIAL_LABELS:
        return _SPECIAL_LABELS[provider_id]
    return provider_id.replace("-", " ").replace("_", " ").title()


def _format_list(provider_ids: list[str]) -> str:
    return ", ".join(label_for(p) for p in dict.fromkeys(provider_ids))


def evaluate(states: list[ProviderState], now: int) -> TrendingResult:
    """Flag a broader outage event from the current batch.

    Trending when two or more providers are degraded-or-worse at once, or
    when a provider is in a major outage while a core cloud provider has
    an incident detected within the last six hours. Pure function of
    ``states``.

    Args:
        states: Current provider states.
        now: Current epoch seconds.

    Returns:
        TrendingResult with at most six signals.
    """
    impacted = [s.provider for s in states if is_degraded_or_worse(s.status)]
    major = [s.provider for s in states if s.status in MAJOR_STATUSES]
    cloud = [
        s.provider
        for s in states
        if s.provider in CORE_CLOUD_PROVIDERS
        and any(
            i.status is not Status.RESOLVED
            and now - i.detected_at <= RECENT_CLOUD_INCIDENT_SECONDS
            for i in s.incidents
        )
    ]
    http_errors = [s.provider for s in states if 400 <= s.http_status < 600]

    multiple = len(impacted) >= 2
    major_with_cloud = bool(major) and bool(cloud)

    signals: list[str] = []
    if multiple or major_with_cloud:
        if multiple:
            signals.append(f"Multiple providers impacted: {_format_list(impacted)}")
        if major:
            signals.append(f"Major outages: {_format_list(major)}")
        if cloud:
            signals.append(f"Cloud incidents: {_format_list(cloud)}")
        if len(http_errors) >= HTTP_ERROR_PROVIDER_THRESHOLD:
            signals.append(f"HTTP errors from {len(http_errors)} providers")

    return TrendingResult(
        trending=multiple or major_with_cloud,
        signals=signals[:MAX_SIGNALS],
        generated_at=now,
    )
