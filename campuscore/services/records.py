"""Record operations exposed to the transport layer.

Every operation takes the acting :class:`~campuscore.services.access.Principal`
as an explicit argument, authorizes it through :mod:`campuscore.services.access`,
validates its input, and only then touches storage.  Results are returned as
plain ``{"success": True, "message": ..., ...}`` envelopes ready for JSON
serialisation; failures are raised as :mod:`campuscore.exceptions` types.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from campuscore.exceptions import DuplicateKeyError, InvalidInputError, NotFoundError
from campuscore.models.student import Student
from campuscore.repositories import EnrollmentRepository, StudentRepository
from campuscore.schemas.student import (
    StudentCreate,
    StudentDetailOut,
    StudentFieldUpdate,
    StudentOut,
    StudentUpdate,
)
from campuscore.services import aggregator
from campuscore.services.access import (
    ADMIN_ONLY,
    STAFF_ROLES,
    PageInfo,
    PageRequest,
    Principal,
    Role,
    authorize,
    resolve_student_scope,
    subject_filter,
)
from campuscore.services.deletion import BulkDeletionReport, DeletionGuard
from campuscore.services.gradebook import (
    GradeBook,
    normalize_subject,
    remove_grade,
    upsert_grade,
    validate_score,
)

logger = logging.getLogger(__name__)

STUDENT_ONLY = frozenset({Role.STUDENT})
ANY_ROLE = frozenset(Role)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _require_pk(pk: Any) -> int:
    """Primary key from an int or a string of digits, e.g. a raw path segment."""
    if isinstance(pk, str) and pk.strip().isascii() and pk.strip().isdecimal():
        pk = int(pk.strip())
    if isinstance(pk, bool) or not isinstance(pk, int) or pk < 1:
        raise InvalidInputError("Invalid student ID format", details={"id": repr(pk)})
    return pk


def _student_ref(student: Student) -> dict[str, Any]:
    return {"id": student.id, "name": student.name, "student_id": student.student_id}


def _profile(student: Student) -> dict[str, Any]:
    return StudentOut.model_validate(student).model_dump(mode="json")


def _detail(student: Student) -> dict[str, Any]:
    data = _profile(student)
    data["grades"] = GradeBook.from_records(student.grades).to_records()
    return StudentDetailOut.model_validate(data).model_dump(mode="json")


class RecordService:
    """Student and grade operations for one request.

    Args:
        students: Student repository bound to the request session.
        enrollments: Enrollment repository bound to the request session.
    """

    def __init__(self, students: StudentRepository, enrollments: EnrollmentRepository) -> None:
        self.students = students
        self.enrollments = enrollments
        self.guard = DeletionGuard(students, enrollments)

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    async def _get_by_pk(self, pk: int) -> Student:
        student = await self.students.find_by_id(pk)
        if student is None:
            raise NotFoundError("Student not found", details={"id": pk})
        return student

    async def _get_scoped(
        self, principal: Principal, pk: Any = None, allowed=ANY_ROLE
    ) -> Student:
        """Resolve the principal's scope and load exactly that student."""
        scope = resolve_student_scope(principal, None, allowed)
        if scope.is_self:
            student = await self.students.find_one(student_id=scope.student_code)
            if student is None:
                raise NotFoundError("Student record not found")
            return student
        return await self._get_by_pk(_require_pk(pk))

    async def _ensure_unique(
        self, *, email: str | None = None, student_code: str | None = None, exclude_pk: int | None = None
    ) -> None:
        if email is not None:
            existing = await self.students.find_one(email=email)
            if existing is not None and existing.id != exclude_pk:
                raise DuplicateKeyError("email")
        if student_code is not None:
            existing = await self.students.find_one(student_id=student_code)
            if existing is not None and existing.id != exclude_pk:
                raise DuplicateKeyError("student_id")

    # ------------------------------------------------------------------
    # Student records
    # ------------------------------------------------------------------

    async def create_student(self, principal: Principal, data: StudentCreate) -> dict[str, Any]:
        """Create a student (admin only); generates ``STU-<year>-<seq>`` when no id is given."""
        authorize(principal, ADMIN_ONLY)
        email = data.email.strip().lower()
        await self._ensure_unique(email=email, student_code=data.student_id)
        code = data.student_id or await self.students.next_student_code()

        student = Student(
            student_id=code,
            name=data.name,
            email=email,
            age=data.age,
            grade_level=data.grade_level,
            grades=[],
        )
        await self.students.save(student)
        logger.info("Student %s created by %s", student.student_id, principal.user_id)
        return {
            "success": True,
            "message": "Student added successfully",
            "student": _profile(student),
        }

    async def list_students(
        self, principal: Principal, page: Any = None, limit: Any = None
    ) -> dict[str, Any]:
        """Paginated student list without grades (admin/teacher)."""
        authorize(principal, STAFF_ROLES)
        page_request = PageRequest.parse(page, limit)
        students = await self.students.find(page_request)
        total = await self.students.count_documents()
        return {
            "success": True,
            "message": "Students retrieved successfully",
            "pagination": PageInfo.build(total, page_request).to_dict(),
            "students": [_profile(s) for s in students],
        }

    async def get_student(self, principal: Principal, pk: Any) -> dict[str, Any]:
        student = await self._get_scoped(principal, pk, STAFF_ROLES)
        return {
            "success": True,
            "message": "Student retrieved successfully",
            "student": _detail(student),
        }

    async def update_student(
        self, principal: Principal, pk: Any, data: StudentUpdate
    ) -> dict[str, Any]:
        """Update the supplied profile fields (admin only)."""
        authorize(principal, ADMIN_ONLY)
        pk = _require_pk(pk)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            raise InvalidInputError(
                "No updatable fields supplied",
                details={"allowed_fields": list(StudentUpdate.model_fields)},
            )
        if "email" in changes:
            changes["email"] = changes["email"].strip().lower()

        student = await self._get_by_pk(pk)
        await self._ensure_unique(
            email=changes.get("email"),
            student_code=changes.get("student_id"),
            exclude_pk=student.id,
        )
        for field, value in changes.items():
            setattr(student, field, value)
        await self.students.save(student)
        logger.info(
            "Student %s updated by %s: fields=%s", student.id, principal.user_id, sorted(changes)
        )
        return {
            "success": True,
            "message": "Student updated successfully",
            "student": _profile(student),
            "updated_fields": list(changes),
        }

    async def update_student_field(
        self, principal: Principal, pk: Any, data: StudentFieldUpdate
    ) -> dict[str, Any]:
        """Update a single profile field (admin only)."""
        authorize(principal, ADMIN_ONLY)
        if data.value is None:
            raise InvalidInputError("Missing required fields", details={"required": ["field", "value"]})
        try:
            update = StudentUpdate.model_validate({data.field: data.value})
        except PydanticValidationError as exc:
            raise InvalidInputError(
                "Validation failed",
                details={"errors": [e["msg"] for e in exc.errors()]},
            ) from exc
        return await self.update_student(principal, pk, update)

    # ------------------------------------------------------------------
    # Grades (staff)
    # ------------------------------------------------------------------

    async def upsert_grade(
        self, principal: Principal, pk: Any, subject: Any, score: Any
    ) -> dict[str, Any]:
        """Add or overwrite one subject grade (admin/teacher)."""
        authorize(principal, STAFF_ROLES)
        if subject is None or score is None:
            raise InvalidInputError(
                "Missing required fields",
                details={
                    "required": ["subject", "score"],
                    "received": {"subject": subject is not None, "score": score is not None},
                },
            )
        value = validate_score(score)
        label = normalize_subject(subject)
        pk = _require_pk(pk)

        student, action = await self.students.modify_grades(
            pk, lambda grades: upsert_grade(grades, label, value)
        )
        record = GradeBook.from_records(student.grades).get(label)
        logger.info(
            "Grade %s for student %s subject=%r by %s", action, pk, record.subject, principal.user_id
        )
        return {
            "success": True,
            "message": f"Grade {action} successfully",
            "grade": {**record.to_dict(), "action": action},
            "student": _student_ref(student),
        }

    async def remove_grade(self, principal: Principal, pk: Any, subject: Any) -> dict[str, Any]:
        """Remove one subject grade (admin/teacher)."""
        authorize(principal, STAFF_ROLES)
        label = normalize_subject(subject)
        pk = _require_pk(pk)

        student, removed = await self.students.modify_grades(
            pk, lambda grades: remove_grade(grades, label)
        )
        logger.info(
            "Grade removed for student %s subject=%r by %s", pk, removed.subject, principal.user_id
        )
        return {
            "success": True,
            "message": "Grade removed successfully",
            "removed_grade": removed.to_dict(),
            "student": _student_ref(student),
        }

    async def get_student_grades(self, principal: Principal, pk: Any) -> dict[str, Any]:
        """Grades of one student.

        Staff may read any student; a student principal always receives its
        own record, whatever *pk* says.
        """
        student = await self._get_scoped(principal, pk, ANY_ROLE)
        book = GradeBook.from_records(student.grades)
        return {
            "success": True,
            "message": "Student grades retrieved successfully",
            "student": {
                **_student_ref(student),
                "grades_count": len(book),
                "average_grade": aggregator.average(book),
            },
            "grades": book.to_records(),
        }

    async def grades_overview(
        self,
        principal: Principal,
        page: Any = None,
        limit: Any = None,
        subject: str | None = None,
    ) -> dict[str, Any]:
        """Paginated grade overview across students (admin/teacher).

        With a subject filter, only students holding a matching subject are
        listed and each grade list is narrowed to the matching subjects;
        counts and averages still cover all of a student's grades.
        """
        authorize(principal, STAFF_ROLES)
        page_request = PageRequest.parse(page, limit)
        needle = subject_filter(subject)

        students = await self.students.find(page_request, subject=needle)
        total = await self.students.count_documents(subject=needle)

        rows: list[dict[str, Any]] = []
        for student in students:
            book = GradeBook.from_records(student.grades)
            rows.append(
                {
                    **_student_ref(student),
                    "grades_count": len(book),
                    "average_grade": aggregator.average(book),
                    "grades": [r.to_dict() for r in book.filter_subjects(needle)],
                }
            )
        rankings = [
            {key: row[key] for key in ("id", "student_id", "name", "average_grade", "rank")}
            for row in aggregator.rank_students(rows)
        ]
        return {
            "success": True,
            "message": "Grades summary retrieved successfully",
            "filters": {"subject": needle},
            "pagination": PageInfo.build(total, page_request).to_dict(),
            "students": rows,
            "rankings": rankings,
        }

    # ------------------------------------------------------------------
    # Grades (student self-service)
    # ------------------------------------------------------------------

    async def get_my_grades(self, principal: Principal) -> dict[str, Any]:
        student = await self._get_scoped(principal, allowed=STUDENT_ONLY)
        book = GradeBook.from_records(student.grades)
        summary = aggregator.summarize(book)
        return {
            "success": True,
            "message": "Grades retrieved successfully",
            "student": {
                "name": student.name,
                "student_id": student.student_id,
                "grades_count": summary.total_subjects,
                "average_grade": summary.average_grade,
            },
            "grades": book.to_records(),
            "grades_by_subject": aggregator.grades_by_subject(book),
            "summary": summary.to_dict(),
        }

    async def get_my_grade(self, principal: Principal, subject: Any) -> dict[str, Any]:
        label = normalize_subject(subject)
        student = await self._get_scoped(principal, allowed=STUDENT_ONLY)
        record = GradeBook.from_records(student.grades).get(label)
        return {
            "success": True,
            "message": f"Grade for {record.subject} retrieved successfully",
            "student": {"name": student.name, "student_id": student.student_id},
            "grade": record.to_dict(),
        }

    async def get_my_summary(self, principal: Principal) -> dict[str, Any]:
        student = await self._get_scoped(principal, allowed=STUDENT_ONLY)
        book = GradeBook.from_records(student.grades)
        academic_summary = aggregator.summarize(book).to_dict()
        academic_summary["subject_grades"] = book.to_records()
        return {
            "success": True,
            "message": "Academic summary retrieved successfully",
            "student": {
                "name": student.name,
                "student_id": student.student_id,
                "email": student.email,
                "age": student.age,
                "grade_level": student.grade_level,
            },
            "academic_summary": academic_summary,
        }

    # ------------------------------------------------------------------
    # Deletion (admin)
    # ------------------------------------------------------------------

    async def check_deletable(self, principal: Principal, pk: Any) -> dict[str, Any]:
        authorize(principal, ADMIN_ONLY)
        student = await self._get_by_pk(_require_pk(pk))
        check = await self.guard.can_delete(student)
        return {
            "success": True,
            "student": {**_student_ref(student), "email": student.email},
            "is_deletable": check.deletable,
            "reason": check.reason,
            "active_enrollments": check.blocking_enrollments,
            "additional_info": {
                "grades_count": len(student.grades or []),
                "created_at": student.created_at.isoformat() if student.created_at else None,
            },
        }

    async def delete_student(self, principal: Principal, pk: Any) -> dict[str, Any]:
        """Permanently delete one student unless active enrollments block it."""
        authorize(principal, ADMIN_ONLY)
        student = await self._get_by_pk(_require_pk(pk))
        deleted = {**_profile(student), "grades_count": len(student.grades or [])}
        await self.guard.delete_one(student, actor=principal.user_id)
        return {
            "success": True,
            "message": "Student deleted successfully",
            "deleted_student": deleted,
            "deletion_timestamp": _now_iso(),
        }

    async def bulk_delete_students(
        self, principal: Principal, ids: list[int]
    ) -> tuple[dict[str, Any], BulkDeletionReport]:
        """Delete several students independently (admin only).

        Returns:
            The response envelope and the report, whose ``outcome`` drives the
            transport status.
        """
        authorize(principal, ADMIN_ONLY)
        invalid = [pk for pk in ids if isinstance(pk, bool) or not isinstance(pk, int) or pk < 1]
        if invalid:
            raise InvalidInputError("Invalid student ID format(s)", details={"invalid_ids": invalid})
        report = await self.guard.bulk_delete(ids, actor=principal.user_id)
        envelope = {
            "success": bool(report.successful),
            "message": report.message,
            "outcome": report.outcome.value,
            "summary": report.summary(),
            "results": {
                "successful": report.successful,
                "blocked_by_enrollments": report.blocked_by_enrollments,
                "failed": report.failed,
                "not_found": report.not_found,
            },
            "timestamp": _now_iso(),
        }
        return envelope, report
