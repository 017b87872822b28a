"""Errors raised by the poll runner."""


class PollInProgressError(Exception):
    """Raised when a poll cycle is requested while another is running."""

    def __init__(self, poll_id: str | None = None) -> None:
        """Initialize the error.

        Args:
            poll_id: Id of the cycle currently holding the lock, if known.
        """
        self.poll_id = poll_id
        message = "Poll cycle already in progress"
        if poll_id:
            message = f"{message} ({poll_id})"
        super().__init__(message)
