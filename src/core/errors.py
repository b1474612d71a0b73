"""Error kinds and exceptions raised by the ingestion core."""
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    BAD_PREFIX = "bad_prefix"
    BAD_FIELD = "bad_field"
    MISSING_REQUIRED = "missing_required"
    UNKNOWN_MESSAGE_TYPE = "unknown_message_type"
    MISSING_BODY = "missing_body"
    INVALID_SHAPE = "invalid_shape"
    UNAUTHORIZED_DEVICE = "unauthorized_device"
    STORAGE_FAILURE = "storage_failure"
    STORAGE_TIMEOUT = "storage_timeout"


class RoadPulseError(Exception):
    """Base class for every error raised by this package."""


class ParseError(RoadPulseError):
    """Relay payload could not be decoded."""

    def __init__(self, kind: ErrorKind, key: Optional[str] = None, detail: str = ""):
        self.kind = kind
        self.key = key
        message = detail or kind.value
        if key:
            message = f"{message} ({key})"
        super().__init__(message)


class TelemetryValidationError(RoadPulseError):
    """Telemetry is missing mandatory fields or comes from an unauthorized device."""

    def __init__(self, kind: ErrorKind, detail: str):
        self.kind = kind
        super().__init__(detail)


class StorageError(RoadPulseError):
    """The incident store is unavailable or rejected the write."""
    kind = ErrorKind.STORAGE_FAILURE


class StorageTimeoutError(StorageError):
    """The incident store did not answer within the configured timeout."""
    kind = ErrorKind.STORAGE_TIMEOUT


class LivenessUpdateError(RoadPulseError):
    """A liveness mutation could not acquire its device lock in time."""


class StatusTransitionError(RoadPulseError):
    """An incident status change would move the lifecycle backwards."""
