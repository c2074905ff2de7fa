"""Custom exception classes for the CampusCore records API.

All domain-level errors are raised as one of these typed exceptions so that
FastAPI exception handlers can convert them to structured error envelopes.
Each class carries a ``category`` naming its status class; the HTTP status
code is chosen by the transport, not here.
"""

from __future__ import annotations

from typing import Any


class RecordsError(Exception):
    """Base class for every error raised by the records core.

    Args:
        message: Human-readable description of the failure.
        details: Optional structured payload surfaced to the caller.
    """

    category: str = "server_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message: str = message
        self.details: dict[str, Any] = details or {}


class InvalidInputError(RecordsError):
    """Raised for malformed subjects, scores, ids or request bodies."""

    category = "invalid_input"


class NotFoundError(RecordsError):
    """Raised when a student or a subject grade does not exist.

    Args:
        message: Description of what was not found.
        available_subjects: For subject lookups, the subjects that do exist.
    """

    category = "not_found"

    def __init__(
        self,
        message: str,
        available_subjects: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        if available_subjects is not None:
            details["available_subjects"] = available_subjects
        super().__init__(message, details)
        self.available_subjects: list[str] | None = available_subjects


class ConflictError(RecordsError):
    """Raised for unique-key collisions and enrollment-blocked deletions.

    Args:
        message: Description of the conflict.
        reason: Machine-readable conflict reason (e.g. ``"active_enrollments"``).
        details: Structured payload, such as the blocking enrollments.
    """

    category = "conflict"

    def __init__(
        self,
        message: str,
        reason: str = "conflict",
        details: dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        details.setdefault("conflict_reason", reason)
        super().__init__(message, details)
        self.reason: str = reason


class DuplicateKeyError(ConflictError):
    """Raised by the student repository on a unique-constraint violation.

    Args:
        field: The unique field that collided (``"email"`` or ``"student_id"``).
    """

    def __init__(self, field: str) -> None:
        super().__init__(
            f"Duplicate {field}: this {field} already exists",
            reason="duplicate_key",
            details={"conflict_field": field},
        )
        self.field: str = field


class ConcurrentModificationError(ConflictError):
    """Raised when a grade write keeps losing the optimistic-concurrency race.

    Args:
        student_pk: Primary key of the contended student row.
        attempts: Number of write attempts made before giving up.
    """

    def __init__(self, student_pk: int, attempts: int) -> None:
        super().__init__(
            f"Student {student_pk} was modified concurrently; gave up after "
            f"{attempts} attempt(s)",
            reason="concurrent_modification",
            details={"attempts": attempts},
        )
        self.student_pk: int = student_pk
        self.attempts: int = attempts


class ForbiddenError(RecordsError):
    """Raised when the principal's role may not perform the operation."""

    category = "forbidden"


class MissingClaimError(RecordsError):
    """Raised when a student principal carries no ``student_id`` claim."""

    category = "missing_claim"

    def __init__(self, claim: str = "student_id") -> None:
        super().__init__(
            f"Claim '{claim}' not found in authentication token",
            details={"claim": claim},
        )
        self.claim: str = claim


class StorageError(RecordsError):
    """Raised when the persistence layer fails.

    Args:
        message: Detail from the underlying driver exception.
        operation: The repository operation that failed.
    """

    category = "storage_error"

    def __init__(self, message: str, operation: str = "") -> None:
        super().__init__(message, {"operation": operation} if operation else None)
        self.operation: str = operation
