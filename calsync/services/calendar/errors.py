"""
Exception taxonomy for calendar connection, sync and suggestion operations.
"""


class CalendarSyncError(Exception):
    """Base exception for calendar integration errors."""

    error_code = "calendar_error"

    def __init__(
        self,
        message: str,
        connection_id: str | None = None,
        error_code: str | None = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.connection_id = connection_id
        self.recoverable = recoverable
        if error_code:
            self.error_code = error_code


class InvalidStateError(CalendarSyncError):
    """OAuth `state` parameter is missing, truncated or tampered with."""

    error_code = "invalid_state"


class TokenExchangeError(CalendarSyncError):
    """Provider rejected the authorization code or refresh token."""

    error_code = "token_exchange_failed"


class ProfileResolutionError(CalendarSyncError):
    """Provider account identity could not be determined."""

    error_code = "profile_resolution_failed"


class ConnectionNotFoundError(CalendarSyncError):
    error_code = "connection_not_found"


class CursorInvalidError(CalendarSyncError):
    """Provider reports the stored sync cursor as expired."""

    error_code = "cursor_invalid"


class ProviderUnavailableError(CalendarSyncError):
    """Network failure or 5xx from the provider. Not retried here."""

    error_code = "provider_unavailable"


class ProviderAuthorizationError(CalendarSyncError):
    """Provider refused the credentials even after a refresh attempt."""

    error_code = "provider_unauthorized"

    def __init__(self, message: str, connection_id: str | None = None, **kwargs):
        kwargs.setdefault("recoverable", False)
        super().__init__(message, connection_id=connection_id, **kwargs)


class ProviderRequestError(CalendarSyncError):
    """Provider rejected a request for a reason other than auth or cursor expiry."""

    error_code = "provider_request_failed"


class ProviderNotConfiguredError(CalendarSyncError):
    error_code = "provider_not_configured"


class ProviderNotSupportedError(CalendarSyncError):
    error_code = "provider_not_supported"


class MalformedEventError(CalendarSyncError):
    """Provider event lacks data required to store it. Skipped, never fatal."""

    error_code = "malformed_event"


class SyncInProgressError(CalendarSyncError):
    """Another sync currently holds the lease for this connection."""

    error_code = "sync_in_progress"
