"""Data models for the HTTP fetch layer."""

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from outage_radar.fetch.constants import (
    DEFAULT_MAX_REDIRECTS,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    TRANSPORT_PRIMARY,
)


class FetchErrorClass(str, Enum):
    """Classification of fetch errors for metrics and provider state.

    - NETWORK_TIMEOUT: Request timed out
    - CONNECTION_ERROR: Could not establish connection (DNS, refused, reset)
    - SSL_ERROR: TLS certificate or handshake error
    - TOO_MANY_REDIRECTS: Redirect limit exceeded
    - RESPONSE_SIZE_EXCEEDED: Response exceeded max size limit
    - HTTP_4XX: Client error status (except 429)
    - HTTP_5XX: Server error status
    - RATE_LIMITED: 429 Too Many Requests
    - UNKNOWN: Unclassified error
    """

    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    SSL_ERROR = "SSL_ERROR"
    TOO_MANY_REDIRECTS = "TOO_MANY_REDIRECTS"
    RESPONSE_SIZE_EXCEEDED = "RESPONSE_SIZE_EXCEEDED"
    HTTP_4XX = "HTTP_4XX"
    HTTP_5XX = "HTTP_5XX"
    RATE_LIMITED = "RATE_LIMITED"
    UNKNOWN = "UNKNOWN"

    @property
    def is_transport(self) -> bool:
        """Whether the failure happened before an HTTP status was received."""
        return self in {
            FetchErrorClass.NETWORK_TIMEOUT,
            FetchErrorClass.CONNECTION_ERROR,
            FetchErrorClass.SSL_ERROR,
            FetchErrorClass.TOO_MANY_REDIRECTS,
            FetchErrorClass.UNKNOWN,
        }


class FetchError(BaseModel):
    """Typed error from a fetch operation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    error_class: FetchErrorClass = Field(description="Classification of the error")
    message: Annotated[str, Field(min_length=1, description="Human-readable message")]
    status_code: int | None = Field(
        default=None, description="HTTP status code if available"
    )


class FetchOptions(BaseModel):
    """Per-call request options.

    Attributes:
        timeout_seconds: Total timeout for one attempt; None uses the fetcher default.
        max_redirects: Redirects followed before giving up.
        headers: Header overrides merged over the defaults.
        ipv4_only: Try the IPv4 transport first.
        method: HTTP method; the latency probe uses HEAD.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout_seconds: Annotated[float, Field(gt=0, le=120)] | None = None
    max_redirects: Annotated[int, Field(ge=0, le=10)] = DEFAULT_MAX_REDIRECTS
    headers: dict[str, str] = Field(default_factory=dict)
    ipv4_only: bool = False
    method: Literal["GET", "HEAD"] = "GET"


class FetchResult(BaseModel):
    """Structured result of a fetch; never raised, always returned.

    A status of 0 means no HTTP response was received.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    status: int = Field(ge=0, le=599, description="HTTP status code or 0")
    final_url: Annotated[
        str, Field(min_length=1, description="Final URL after redirects")
    ]
    body: bytes = Field(default=b"", description="Response body")
    error: FetchError | None = Field(
        default=None, description="Error details if fetch failed"
    )
    transport: str = Field(
        default=TRANSPORT_PRIMARY, description="Transport that produced the result"
    )
    elapsed_ms: float = Field(default=0.0, ge=0, description="Wall time of the attempt")

    @property
    def ok(self) -> bool:
        """Check if the fetch succeeded (status in [200, 400), no error)."""
        return (
            self.error is None and HTTP_STATUS_OK_MIN <= self.status < HTTP_STATUS_OK_MAX
        )

    @property
    def text(self) -> str:
        """Decode the body as UTF-8, replacing invalid bytes."""
        return self.body.decode("utf-8", errors="replace")


class ResponseSizeExceededError(Exception):
    """Raised when response size exceeds the configured limit."""
