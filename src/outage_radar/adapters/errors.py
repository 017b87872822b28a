"""Error types for the source adapters."""

from outage_radar.errors import ErrorKind


class AdapterError(Exception):
    """Base exception for adapter errors."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        provider_id: str | None = None,
        details: dict[str, str | int | bool | None] | None = None,
    ) -> None:
        """Initialize the adapter error.

        Args:
            kind: Classification of the error.
            message: Human-readable error message.
            provider_id: Provider whose payload failed.
            details: Additional structured error details.
        """
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.provider_id = provider_id
        self.details = details or {}


class ParseError(AdapterError):
    """Raised when a payload cannot be parsed (bad JSON, broken XML)."""

    def __init__(
        self,
        message: str,
        provider_id: str | None = None,
        context: str | None = None,
    ) -> None:
        """Initialize the parse error.

        Args:
            message: Human-readable error message.
            provider_id: Provider whose payload failed.
            context: Snippet of content around the error.
        """
        details: dict[str, str | int | bool | None] = {}
        if context is not None:
            details["context"] = context[:200]
        super().__init__(
            kind=ErrorKind.PARSE_ERROR,
            message=message,
            provider_id=provider_id,
            details=details,
        )
        self.context = context
