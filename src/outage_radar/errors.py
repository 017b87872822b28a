"""Error taxonomy shared by the poll pipeline."""

from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class ErrorKind(str, Enum):
    """Classification of pipeline failures and expected outcomes.

    - TRANSPORT_ERROR: Network failure or timeout after the fallback attempt
    - PARSE_ERROR: Malformed payload; the provider reports unknown
    - CLASSIFICATION_AMBIGUOUS: Unmapped raw status word, defaulted to degraded
    - DUPLICATE_SUPPRESSED: Alert withheld by dedup or cooldown (not a failure)
    - PERSISTENCE_UNAVAILABLE: Store write failed; state may lag one cycle
    """

    TRANSPORT_ERROR = "transport_error"
    PARSE_ERROR = "parse_error"
    CLASSIFICATION_AMBIGUOUS = "classification_ambiguous"
    DUPLICATE_SUPPRESSED = "duplicate_suppressed"
    PERSISTENCE_UNAVAILABLE = "persistence_unavailable"


class ErrorRecord(BaseModel):
    """Serializable error record attached to poll results."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: ErrorKind = Field(description="Error classification")
    message: Annotated[str, Field(min_length=1, description="Error message")]
    provider_id: str | None = Field(default=None, description="Provider identifier")
    details: dict[str, str | int | bool | None] = Field(
        default_factory=dict, description="Additional error details"
    )
