"""Data models for the early-warning probe."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from outage_radar.model.incident import PrecursorView


RISK_MAX = 100


class CrowdReport(BaseModel):
    """One entry from the crowd-report trend feed.

    Attributes:
        title: Report title as published.
        timestamp: Publish time in epoch seconds.
        link: Report URL.
        age_minutes: Age relative to the matching call; set on matches only.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    title: Annotated[str, Field(min_length=1)]
    timestamp: int = Field(ge=0)
    link: str = ""
    age_minutes: int | None = None


class PrecursorMeasures(BaseModel):
    """Raw measurements behind a risk score."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    latency_ms: int | None = None
    baseline_ms: int | None = None
    http_ok: bool | None = None
    http_status: int | None = None
    report_count: int = 0
    report_age_minutes: int | None = None


class PrecursorResult(BaseModel):
    """Advisory early-warning result for one provider.

    Attributes:
        provider: Provider id.
        risk: Summed signal weights, capped at 100.
        signals: Names of the contributing signals, in evaluation order.
        measures: Raw latency, baseline and crowd-report measurements.
        summary: One-line human summary.
        updated_at: Epoch seconds of the evaluation.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    provider: str
    risk: Annotated[int, Field(ge=0, le=RISK_MAX)] = 0
    signals: list[str] = Field(default_factory=list)
    measures: PrecursorMeasures = Field(default_factory=PrecursorMeasures)
    summary: str = "No early signals"
    updated_at: int = Field(ge=0)

    def to_view(self) -> PrecursorView:
        """Reduce to the view attached to a ProviderState."""
        return PrecursorView(risk=self.risk, summary=self.summary, signals=self.signals)
