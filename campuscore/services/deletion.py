"""Enrollment-aware guard around permanent student deletion.

A student is deletable iff it has no enrollment whose status is ``active``,
``enrolled`` or ``in_progress``.  If the enrollment lookup itself fails, the
guard fails closed and reports the student as blocked.

Bulk deletion is deliberately non-atomic: candidates are processed one at a
time, each outcome is recorded, and nothing is rolled back when a later
candidate is blocked or fails.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from campuscore.exceptions import ConflictError, InvalidInputError, NotFoundError
from campuscore.models.student import Student
from campuscore.repositories import ActiveEnrollment, EnrollmentRepository, StudentRepository

logger = logging.getLogger(__name__)

UNVERIFIED_ENROLLMENT: dict[str, Any] = {"error": "Could not verify enrollment status"}


@dataclass
class DeletionCheck:
    """Result of :meth:`DeletionGuard.can_delete`.

    Attributes:
        deletable: ``True`` when nothing blocks deletion.
        blocking_enrollments: Active enrollments (as dicts), or a single
            synthetic entry when the check could not be performed.
    """

    deletable: bool
    blocking_enrollments: list[dict[str, Any]] = field(default_factory=list)

    @property
    def reason(self) -> str:
        return "No blocking factors" if self.deletable else "Has active enrollments"


class BulkOutcome(str, enum.Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    BLOCKED = "blocked"
    FAILURE = "failure"


@dataclass
class BulkDeletionReport:
    """Per-candidate outcomes of :meth:`DeletionGuard.bulk_delete`."""

    requested: int
    found: int = 0
    successful: list[dict[str, Any]] = field(default_factory=list)
    blocked_by_enrollments: list[dict[str, Any]] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)
    not_found: list[int] = field(default_factory=list)

    @property
    def outcome(self) -> BulkOutcome:
        """Tri-state result; ``blocked`` is total failure caused only by enrollments."""
        if self.successful:
            if self.blocked_by_enrollments or self.failed:
                return BulkOutcome.PARTIAL_SUCCESS
            return BulkOutcome.SUCCESS
        if self.blocked_by_enrollments and not self.failed:
            return BulkOutcome.BLOCKED
        return BulkOutcome.FAILURE

    @property
    def message(self) -> str:
        return {
            BulkOutcome.SUCCESS: "Bulk deletion completed",
            BulkOutcome.PARTIAL_SUCCESS: "Bulk deletion partially completed",
            BulkOutcome.BLOCKED: "No students could be deleted due to active enrollments",
            BulkOutcome.FAILURE: "All deletion attempts failed",
        }[self.outcome]

    def summary(self) -> dict[str, int]:
        return {
            "requested": self.requested,
            "found": self.found,
            "deleted": len(self.successful),
            "blocked_by_enrollments": len(self.blocked_by_enrollments),
            "failed": len(self.failed),
        }


def _student_ref(student: Student) -> dict[str, Any]:
    return {"id": student.id, "student_id": student.student_id, "name": student.name}


class DeletionGuard:
    """Checks enrollments before permanently removing student rows.

    Args:
        students: Student repository used for lookups and deletion.
        enrollments: Enrollment repository queried for active enrollments.
    """

    def __init__(self, students: StudentRepository, enrollments: EnrollmentRepository) -> None:
        self.students = students
        self.enrollments = enrollments

    async def can_delete(self, student: Student) -> DeletionCheck:
        """Report whether *student* may be deleted; fails closed on lookup errors."""
        try:
            active: list[ActiveEnrollment] = await self.enrollments.find_active_enrollments(
                student.id
            )
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Enrollment check failed for student %s; treating as not deletable: %s",
                student.student_id,
                exc,
            )
            return DeletionCheck(deletable=False, blocking_enrollments=[dict(UNVERIFIED_ENROLLMENT)])
        return DeletionCheck(
            deletable=not active,
            blocking_enrollments=[enrollment.to_dict() for enrollment in active],
        )

    async def delete_one(self, student: Student, *, actor: str = "") -> DeletionCheck:
        """Permanently delete *student* unless an active enrollment blocks it.

        Raises:
            ConflictError: Blocked by enrollments; ``details`` carries them.
            StorageError: The delete itself failed.
        """
        check = await self.can_delete(student)
        if not check.deletable:
            raise ConflictError(
                "Cannot delete student with active enrollments",
                reason="active_enrollments",
                details={
                    "hint": "Student must be unenrolled from all courses before deletion",
                    "active_enrollments": check.blocking_enrollments,
                },
            )
        await self.students.delete_by_id(student.id)
        logger.info("Student %s (%s) deleted by %s", student.id, student.student_id, actor or "unknown")
        return check

    async def bulk_delete(self, ids: Iterable[int], *, actor: str = "") -> BulkDeletionReport:
        """Delete each candidate independently and report every outcome.

        Duplicate ids are processed once, in first-seen order.

        Raises:
            InvalidInputError: *ids* is empty.
            NotFoundError: None of the ids exist.
        """
        candidates = list(dict.fromkeys(ids))
        if not candidates:
            raise InvalidInputError(
                "Student IDs array is required and cannot be empty",
                details={"expected": "Array of student ids"},
            )

        report = BulkDeletionReport(requested=len(candidates))
        students: list[Student] = []
        for pk in candidates:
            try:
                student = await self.students.find_by_id(pk)
            except Exception as exc:  # noqa: BLE001
                logger.error("Bulk deletion lookup failed for student %s: %s", pk, exc)
                report.failed.append({"id": pk, "error": "Lookup failed due to server error"})
                continue
            if student is None:
                report.not_found.append(pk)
            else:
                students.append(student)
        report.found = len(students)
        if not students and not report.failed:
            raise NotFoundError(
                "No students found for the provided IDs", details={"ids": candidates}
            )

        for student in students:
            ref = _student_ref(student)
            check = await self.can_delete(student)
            if not check.deletable:
                report.blocked_by_enrollments.append(
                    {**ref, "active_enrollments": check.blocking_enrollments}
                )
                continue
            try:
                await self.students.delete_by_id(student.id)
            except Exception as exc:  # noqa: BLE001
                logger.error("Bulk deletion failed for student %s: %s", student.id, exc)
                report.failed.append({**ref, "error": "Deletion failed due to server error"})
                continue
            report.successful.append({**ref, "email": student.email})
            logger.info(
                "Student %s (%s) deleted in bulk operation by %s",
                student.id,
                student.student_id,
                actor or "unknown",
            )

        logger.info("Bulk deletion by %s finished: %s", actor or "unknown", report.summary())
        return report
