"""Custom exception hierarchy for fuelsync."""

from __future__ import annotations


class FuelSyncError(Exception):
    """Base exception for all fuelsync errors."""


class FuelSyncConfigError(FuelSyncError):
    """Invalid or missing configuration."""


class FuelSyncTransportError(FuelSyncError):
    """HTTP-level failure (network error, connection reset, DNS)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class FuelSyncTimeoutError(FuelSyncTransportError):
    """The backend did not answer within the configured request timeout."""


class FuelSyncApiError(FuelSyncError):
    """Backend answered, but with a non-2xx status or an unusable body."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class FuelSyncRateLimitError(FuelSyncApiError):
    """Rate limited (HTTP 429).

    Raised to the caller only after all retry attempts are exhausted.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = 429,
        url: str = "",
        retry_after: float | None = None,
    ) -> None:
        self.retry_after = retry_after
        super().__init__(message, status_code=status_code, url=url)


class FuelSyncParseError(FuelSyncError):
    """A backend row or push payload could not be normalized.

    Row-level parse errors never fail a whole batch; the offending row is
    skipped and the rest of the batch is kept.
    """

    def __init__(self, message: str, *, row_id: str | None = None) -> None:
        self.row_id = row_id
        super().__init__(message)


class FuelSyncConnectionError(FuelSyncError):
    """Realtime subscription failed or closed unexpectedly.

    Handled by the channel's reconnect policy and surfaced only as state;
    consumers never see it raised.
    """
