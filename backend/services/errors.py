"""Error taxonomy for the sync and analytics pipeline.

Insufficient history is not an error: it is reported through ``is_real_data``
on the analytics results.
"""

from typing import Optional


class ApiError(Exception):
    """Instagram Graph API returned a non-2xx response or could not be reached.

    ``status_code`` is None for transport failures (timeouts, DNS, resets).
    """

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class RefreshError(Exception):
    """Access token refresh failed. The account gets deactivated, not retried."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StoreError(Exception):
    """The database rejected a read or write."""


class AccountNotSyncableError(Exception):
    """Account is inactive or has no usable access token."""
