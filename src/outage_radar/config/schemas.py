"""Provider directory and noise-rule configuration schemas."""

from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SourceFormat(str, Enum):
    """Wire format of a provider's status source.

    - STATUSPAGE: Statuspage-style summary.json (indicator + incidents)
    - RSS: RSS 2.0 incident feed
    - ATOM: Atom 1.0 incident feed
    """

    STATUSPAGE = "statuspage"
    RSS = "rss"
    ATOM = "atom"


def _validate_http_url(v: str) -> str:
    if not v.startswith(("http://", "https://")):
        msg = "URL must start with http:// or https://"
        raise ValueError(msg)
    return v


class ProviderConfig(BaseModel):
    """Static directory entry for one monitored provider.

    Attributes:
        id: Stable slug used in keys and guids.
        name: Display name.
        format: Source format that selects the adapter.
        endpoints: Fetch endpoints in preference order; later entries are fallbacks.
        status_url: Public status page URL shown to humans.
        probe_url: Optional URL for the latency probe.
        aliases: Extra keywords for crowd-report matching.
        enabled: Whether the provider is polled.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: Annotated[str, Field(min_length=1, max_length=64, pattern=r"^[a-z0-9_-]+$")]
    name: Annotated[str, Field(min_length=1, max_length=120)]
    format: SourceFormat
    endpoints: Annotated[list[str], Field(min_length=1)]
    status_url: Annotated[str, Field(min_length=1)]
    probe_url: str | None = None
    aliases: list[str] = Field(default_factory=list)
    enabled: bool = True

    @field_validator("endpoints")
    @classmethod
    def validate_endpoints(cls, v: list[str]) -> list[str]:
        """Validate every endpoint is an http(s) URL."""
        return [_validate_http_url(url) for url in v]

    @field_validator("status_url")
    @classmethod
    def validate_status_url(cls, v: str) -> str:
        """Validate the status page URL."""
        return _validate_http_url(v)

    @field_validator("probe_url")
    @classmethod
    def validate_probe_url(cls, v: str | None) -> str | None:
        """Validate the probe URL when present."""
        return _validate_http_url(v) if v is not None else None


class ProvidersConfig(BaseModel):
    """Root configuration for providers.yaml."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    version: Annotated[str, Field(pattern=r"^\d+\.\d+$")] = "1.0"
    providers: list[ProviderConfig]

    @model_validator(mode="after")
    def validate_unique_ids(self) -> "ProvidersConfig":
        """Ensure all provider IDs are unique."""
        ids = [p.id for p in self.providers]
        duplicates = {id_ for id_ in ids if ids.count(id_) > 1}
        if duplicates:
            msg = f"Duplicate provider IDs found: {duplicates}"
            raise ValueError(msg)
        return self

    def enabled(self) -> list[ProviderConfig]:
        """Return enabled providers in directory order."""
        return [p for p in self.providers if p.enabled]

    def get(self, provider_id: str) -> ProviderConfig | None:
        """Look up a provider by id."""
        for provider in self.providers:
            if provider.id == provider_id:
                return provider
        return None


class NoiseRule(BaseModel):
    """Title phrases that mark an advisory as routine for some providers.

    Attributes:
        name: Rule name reported in classification summaries.
        phrases: Case-insensitive substrings matched against the title.
        providers: Provider ids the rule applies to; empty means all.
        force_maintenance: Re-map the status to maintenance when matched.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: Annotated[str, Field(min_length=1)]
    phrases: Annotated[list[str], Field(min_length=1)]
    providers: list[str] = Field(default_factory=list)
    force_maintenance: bool = False

    def applies_to(self, provider_id: str) -> bool:
        """Check whether the rule covers a provider."""
        return not self.providers or provider_id in self.providers

    def matches(self, provider_id: str, title: str) -> bool:
        """Check whether a title trips the rule for a provider."""
        if not self.applies_to(provider_id):
            return False
        lowered = title.lower()
        return any(phrase.lower() in lowered for phrase in self.phrases)


class NoiseRules(BaseModel):
    """Root configuration for noise.yaml."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    version: Annotated[str, Field(pattern=r"^\d+\.\d+$")] = "1.0"
    rules: list[NoiseRule] = Field(default_factory=list)

    def match(self, provider_id: str, title: str) -> NoiseRule | None:
        """Return the first rule a title trips, if any."""
        for rule in self.rules:
            if rule.matches(provider_id, title):
                return rule
        return None
