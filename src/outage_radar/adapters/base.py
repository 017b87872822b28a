"""Adapter interface and raw parse results."""

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import ClassVar

import structlog
from pydantic import BaseModel, ConfigDict, Field

from outage_radar.adapters.errors import ParseError
from outage_radar.config.schemas import ProviderConfig, SourceFormat


logger = structlog.get_logger()

RAW_UNKNOWN = "unknown"


class RawIncident(BaseModel):
    """One incident in the source's own vocabulary."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    source_id: str | None = None
    title: str
    status: str
    impact: str | None = None
    url: str = ""
    components: list[str] = Field(default_factory=list)
    started_at: int | None = None
    updated_at: int | None = None
    resolved_at: int | None = None


class RawResult(BaseModel):
    """Provider-agnostic parse output, still in raw vocabulary.

    Attributes:
        status: Overall raw status word; ``unknown`` when parsing failed.
        incidents: Open incidents.
        closed: Resolved entries kept for history only.
        summary: Source-provided one-line description, if any.
        updated_at: Source-reported update time, if any.
        warnings: Non-fatal parse warnings.
        parse_error: Message when the payload was unparseable.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    status: str
    incidents: list[RawIncident] = Field(default_factory=list)
    closed: list[RawIncident] = Field(default_factory=list)
    summary: str = ""
    updated_at: int | None = None
    warnings: list[str] = Field(default_factory=list)
    parse_error: str | None = None

    @property
    def parsed(self) -> bool:
        """Whether the payload was understood."""
        return self.parse_error is None

    @classmethod
    def unparseable(cls, message: str, warnings: list[str] | None = None) -> "RawResult":
        """Best-effort empty result for a malformed payload."""
        return cls(status=RAW_UNKNOWN, parse_error=message, warnings=warnings or [])


def to_epoch(value: object) -> int | None:
    """Convert an ISO-8601 or RFC-822 timestamp (or epoch number) to epoch seconds."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return int(value)
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return int(parsed.timestamp())


class Adapter(ABC):
    """Parses a raw response body for one source format."""

    format: ClassVar[SourceFormat]

    def parse(self, body: bytes, provider: ProviderConfig, now: int) -> RawResult:
        """Parse a body, converting malformed input into an unknown result.

        Args:
            body: Raw response body.
            provider: Provider the body belongs to.
            now: Current epoch seconds.

        Returns:
            RawResult; never raises for bad payloads.
        """
        log = logger.bind(
            component="adapter",
            provider_id=provider.id,
            format=self.format.value,
        )
        try:
            result = self._parse(body, provider, now)
        except ParseError as e:
            log.warning("parse_error", error=e.message, **e.details)
            return RawResult.unparseable(e.message)
        except (TypeError, AttributeError, ValueError, OverflowError) as e:
            # Well-formed syntax with the wrong shape, e.g. a number where a list belongs
            message = f"Malformed payload: {e}"
            log.warning("parse_error", error=message, error_type=type(e).__name__)
            return RawResult.unparseable(message)

        log.debug(
            "parse_complete",
            status=result.status,
            open_incidents=len(result.incidents),
            closed_incidents=len(result.closed),
            warnings=len(result.warnings),
        )
        return result

    @abstractmethod
    def _parse(self, body: bytes, provider: ProviderConfig, now: int) -> RawResult:
        """Format-specific parsing.

        Raises:
            ParseError: If the payload cannot be understood.
        """
