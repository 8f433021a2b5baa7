"""Domain error hierarchy.

Validation and lookup failures are raised back to the caller with a
human-readable message; the CLI shows the message as-is. Storage errors
are raised by the key-value backends and swallowed (logged) by the
persistence adapter.
"""
from typing import Optional


class TaskTrackError(Exception):
    """Base class for every error raised by the engine."""

    kind = "error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class ValidationError(TaskTrackError, ValueError):
    kind = "validation"


class NotFoundError(TaskTrackError, LookupError):
    kind = "not_found"


class DuplicateError(TaskTrackError):
    kind = "duplicate"


class LimitExceededError(TaskTrackError):
    kind = "limit"


class StorageError(TaskTrackError):
    """Backend read/write failure."""

    kind = "storage"


class StorageQuotaError(StorageError):
    """Write refused because the storage quota would be exceeded."""

    kind = "quota"
