"""Closed error taxonomy shared by the lifecycle, milestone and workflow services.

Services raise these; the HTTP layer converts them to responses in exactly one
place (`taskflow.core.error_handling`).
"""

from __future__ import annotations

from enum import Enum

from fastapi import status


class ErrorKind(str, Enum):
    """Every failure a core operation can report."""

    NOT_FOUND = "not_found"
    NOT_AUTHORIZED = "not_authorized"
    INVALID_TRANSITION = "invalid_transition"
    ALREADY_CLAIMED = "already_claimed"
    VERSION_CONFLICT = "version_conflict"
    ALREADY_ACTIVE = "already_active"
    VALIDATION_ERROR = "validation_error"
    STORAGE_ERROR = "storage_error"


ERROR_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.NOT_AUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorKind.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.ALREADY_CLAIMED: status.HTTP_409_CONFLICT,
    ErrorKind.VERSION_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.ALREADY_ACTIVE: status.HTTP_409_CONFLICT,
    ErrorKind.VALIDATION_ERROR: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.STORAGE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
}

RETRYABLE_KINDS = frozenset({ErrorKind.VERSION_CONFLICT, ErrorKind.STORAGE_ERROR})


class LifecycleError(Exception):
    """Base class for every error surfaced by the core services."""

    kind: ErrorKind = ErrorKind.STORAGE_ERROR
    default_message = "Operation failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return ERROR_STATUS_CODES[self.kind]

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class NotFoundError(LifecycleError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Not found"


class NotAuthorizedError(LifecycleError):
    """The actor does not hold the task it tried to release or complete."""

    kind = ErrorKind.NOT_AUTHORIZED
    default_message = "Task is claimed by another user"


class InvalidTransitionError(LifecycleError):
    kind = ErrorKind.INVALID_TRANSITION
    default_message = "Operation not allowed in the current state"


class AlreadyClaimedError(LifecycleError):
    kind = ErrorKind.ALREADY_CLAIMED
    default_message = "Task is already claimed"


class VersionConflictError(LifecycleError):
    """Stale version on an otherwise legal operation; refetch and retry."""

    kind = ErrorKind.VERSION_CONFLICT
    default_message = "Version conflict"


class AlreadyActiveError(LifecycleError):
    kind = ErrorKind.ALREADY_ACTIVE
    default_message = "Another milestone is already active in this project"


class DomainValidationError(LifecycleError):
    kind = ErrorKind.VALIDATION_ERROR
    default_message = "Invalid input"


class StorageError(LifecycleError):
    kind = ErrorKind.STORAGE_ERROR
    default_message = "Storage unavailable"
