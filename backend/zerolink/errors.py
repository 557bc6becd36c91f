"""Relay error taxonomy.

Each failure class maps to one handling policy:

    AuthFailure         -> close the WebSocket with AUTH_FAILURE_CLOSE_CODE
    MalformedEvent      -> drop the event, log, keep the session
    PersistenceFailure  -> fail the single operation, keep the session
    UploadFailure       -> HTTP error on the upload request
"""


class RelayError(Exception):
    """Base class for all relay errors."""


class AuthFailure(RelayError):
    """Missing, invalid or expired credential."""


class MalformedEvent(RelayError):
    """Inbound event that cannot be parsed or is missing required fields."""


class PersistenceFailure(RelayError):
    """The persistence store was unreachable or rejected a read/write."""


class UploadFailure(RelayError):
    """Blob storage rejected or failed to store an upload."""

    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message)
        self.status_code = status_code
