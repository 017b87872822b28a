"""Domain exceptions for the state store.

Infrastructure failures (database unreachable, migration failure) are
separated from the rest so the poller can report them as
``persistence_unavailable`` and keep serving the cycle's results.
"""


class StateStoreError(Exception):
    """Base exception for all state store errors."""


class ConnectionError(StateStoreError):
    """Raised when the database connection is missing or unusable."""

    def __init__(self, message: str = "Database not connected") -> None:
        """Initialize the connection error.

        Args:
            message: Human-readable error message.
        """
        super().__init__(message)


class WriteError(StateStoreError):
    """Raised when a write transaction fails."""

    def __init__(self, operation: str, message: str) -> None:
        """Initialize the write error.

        Args:
            operation: Name of the failed operation.
            message: Underlying error message.
        """
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


class MigrationError(StateStoreError):
    """Raised when a schema migration fails."""

    def __init__(self, version: int, message: str) -> None:
        """Initialize the migration error.

        Args:
            version: The migration version that failed.
            message: Human-readable error message.
        """
        self.version = version
        super().__init__(f"Migration {version} failed: {message}")


class ReadError(StateStoreError):
    """Raised when a query against the store fails."""
