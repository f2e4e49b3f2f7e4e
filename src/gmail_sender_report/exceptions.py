"""Custom exceptions for Gmail Sender Report."""


class SenderReportError(Exception):
    """Base exception for all Gmail Sender Report errors."""


class ConfigurationError(SenderReportError):
    """Exception raised for configuration related errors."""


class AuthenticationError(SenderReportError):
    """Exception raised for authentication failures."""


class GmailAPIError(SenderReportError):
    """Exception raised for Gmail API related errors.

    Attributes:
        status_code: HTTP status of the failed response, or None for network errors.
        reason: Error reason reported by the API (e.g. ``rateLimitExceeded``).
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        reason: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


class ListError(SenderReportError):
    """Exception raised when the message listing cannot be completed."""


class FatalFetchError(SenderReportError):
    """Exception raised when a metadata fetch fails in a way that invalidates the run."""

    def __init__(self, item_id: str, reason: str) -> None:
        super().__init__(f"Fatal error fetching message {item_id}: {reason}")
        self.item_id = item_id
        self.reason = reason
