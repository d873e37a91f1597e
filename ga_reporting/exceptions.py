"""
Error types raised by the GA4 reporting layer.
"""
from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError


# Transport and auth failures come from the Google libraries and are never wrapped.
TRANSPORT_ERRORS = (GoogleAPIError, GoogleAuthError)


class AnalyticsError(Exception):
    """Base class for reporting errors."""


class InvalidPeriod(AnalyticsError, ValueError):
    """Start date is after the end date."""


class MalformedResponse(AnalyticsError):
    """
    A report row does not have the shape the decoder expects.
    """

    def __init__(self, message: str, row=None, expected_columns: int = None):
        super().__init__(message)
        self.row = row
        self.expected_columns = expected_columns
