"""Error taxonomy for sync sessions."""
from typing import Any, Optional


class SyncError(RuntimeError):
    """Base class for sync failures."""


class TransportError(SyncError):
    """Network failure or server error; retryable while polling."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class APIError(TransportError):
    """Server answered with a non-retryable 4xx."""

    def __init__(self, status_code: int, method: str, endpoint: str, detail: Any = None):
        super().__init__(f"API error {status_code} on {method} {endpoint}: {detail}", status_code)
        self.method = method
        self.endpoint = endpoint
        self.detail = detail


class TooManyTransportErrors(TransportError):
    """Polling gave up after repeated transport errors."""


class TriggerError(SyncError):
    """Server refused to start a historical import job."""


class AlreadyInProgressError(TriggerError):
    """A job is already running; attach to it instead of starting one."""


class UploadError(SyncError):
    """One record failed to upload."""

    def __init__(self, message: str, record_id: Optional[str] = None):
        super().__init__(message)
        self.record_id = record_id


class PermissionDeniedError(SyncError):
    """Access to the local activity data was denied."""


class PollTimeoutError(SyncError):
    """Session exceeded its configured time limit."""
