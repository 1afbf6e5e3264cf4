from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    QUERY_FAILURE = "query_failure"
    ASSET_FETCH_FAILURE = "asset_fetch_failure"
    NOT_AUTHENTICATED = "not_authenticated"
    MISSING_IMAGE = "missing_image"
    ENCODING_FAILURE = "encoding_failure"
    REMOTE_WRITE_FAILURE = "remote_write_failure"
    REMOTE_TIMEOUT = "remote_timeout"
    SYNC_IN_PROGRESS = "sync_in_progress"
    COORDINATOR_CLOSED = "coordinator_closed"


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""


class RemoteError(RuntimeError):
    """Raised when a call to the hosted backend fails."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class RemoteTimeout(RemoteError):
    """Raised when a backend call does not answer in time."""


class SyncError(RuntimeError):
    """Raised (or delivered) when a feed sync cannot produce any records."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class SubmitError(RuntimeError):
    """Raised when a post submission is rejected or fails remotely."""

    def __init__(self, kind: ErrorKind, user_message: str) -> None:
        super().__init__(user_message)
        self.kind = kind
        self.user_message = user_message


class SessionError(RuntimeError):
    """Raised when reading or ending the backend session fails."""
