"""Exception taxonomy for calendar merging."""
from typing import Optional


class CalendarMergeError(Exception):
    """Base class for all calendar merge errors."""


class NetworkError(CalendarMergeError):
    """Raised when a feed cannot be retrieved."""

    def __init__(self, message: str, locator: Optional[str] = None):
        super().__init__(message)
        self.locator = locator


class ParseError(CalendarMergeError):
    """Raised when a feed body is not a usable calendar document."""


class ValidationError(CalendarMergeError):
    """Raised when an event violates a structural invariant."""
