"""Async SQLAlchemy repositories for students and enrollments.

These are the persistence collaborators of the records core.  Every method
translates driver failures into :class:`~campuscore.exceptions.StorageError`
(unique-key violations into :class:`~campuscore.exceptions.DuplicateKeyError`),
so services never see SQLAlchemy exceptions.

Writes, and the reads bulk deletion makes per candidate (``find_by_id``,
``find_active_enrollments``), run inside a SAVEPOINT (``session.begin_nested()``).
A failed statement then only rolls back its savepoint and the request
transaction stays usable, so bulk deletion carries on after one candidate
fails.  The outer transaction is committed by
:func:`campuscore.database.get_async_db`.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import Select, column, delete, exists, func, select
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from campuscore.config import Settings, get_settings
from campuscore.exceptions import (
    ConcurrentModificationError,
    DuplicateKeyError,
    NotFoundError,
    StorageError,
)
from campuscore.models.course import Course
from campuscore.models.enrollment import ACTIVE_ENROLLMENT_STATUSES, Enrollment
from campuscore.models.student import Student
from campuscore.services.access import PageRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")

GradeMutation = Callable[[list[dict[str, Any]]], tuple[list[dict[str, Any]], T]]

_STUDENT_CODE_RE = re.compile(r"^STU-(\d{4})-(\d+)$")


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Re-raise SQLAlchemy failures as :class:`StorageError`."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Storage failure during %s: %s", operation, exc)
        raise StorageError(f"Storage failure during {operation}", operation=operation) from exc


def _duplicate_field(exc: IntegrityError) -> str:
    detail = str(exc.orig or exc)
    if "student_id" in detail:
        return "student_id"
    if "email" in detail:
        return "email"
    return "unique_key"


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def format_student_code(year: int, sequence: int) -> str:
    """Human-readable student id, e.g. ``STU-2025-0007``."""
    return f"STU-{year}-{sequence:04d}"


# ---------------------------------------------------------------------------
# Students
# ---------------------------------------------------------------------------


class StudentRepository:
    """Document-style access to the ``students`` table.

    Args:
        session: Request-scoped async session.
        settings: Used for the write-retry budget; defaults to the app settings.
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None) -> None:
        self.session = session
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_by_id(self, pk: int, *, refresh: bool = False) -> Student | None:
        with _storage_errors("find_by_id"):
            async with self.session.begin_nested():
                return await self.session.get(Student, pk, populate_existing=refresh)

    async def find_one(self, **filters: Any) -> Student | None:
        """Return the first student matching equality *filters* (e.g. ``email=...``)."""
        with _storage_errors("find_one"):
            stmt = select(Student).filter_by(**filters).limit(1)
            result = await self.session.execute(stmt)
            return result.scalars().first()

    def _subject_clause(self, subject: str):
        # EXISTS (SELECT 1 FROM jsonb_array_elements(grades) g WHERE g->>'subject' ILIKE ...)
        element = (
            func.jsonb_array_elements(Student.grades)
            .table_valued(column("value", JSONB))
            .render_derived(name="g")
        )
        pattern = f"%{_escape_like(subject)}%"
        return exists(
            select(1)
            .select_from(element)
            .where(element.c.value["subject"].astext.ilike(pattern, escape="\\"))
        )

    def _filtered(self, stmt: Select, subject: str | None) -> Select:
        if subject:
            stmt = stmt.where(self._subject_clause(subject))
        return stmt

    async def find(
        self, page: PageRequest, *, subject: str | None = None
    ) -> list[Student]:
        """Return one page of students, newest first.

        Args:
            page: Validated pagination request.
            subject: Optional case-insensitive substring; only students with a
                grade whose subject contains it are returned.
        """
        with _storage_errors("find"):
            stmt = self._filtered(select(Student), subject)
            stmt = (
                stmt.order_by(Student.created_at.desc(), Student.id.desc())
                .offset(page.offset)
                .limit(page.limit)
            )
            result = await self.session.execute(stmt)
            return list(result.scalars().all())

    async def count_documents(self, *, subject: str | None = None) -> int:
        with _storage_errors("count_documents"):
            stmt = self._filtered(select(func.count()).select_from(Student), subject)
            result = await self.session.execute(stmt)
            return int(result.scalar_one())

    async def next_student_code(self, year: int | None = None) -> str:
        """Generate the next ``STU-<year>-<seq>`` id for *year* (default: current year)."""
        year = year or datetime.now().year
        with _storage_errors("next_student_code"):
            stmt = select(Student.student_id).where(
                Student.student_id.like(f"STU-{year}-%")
            )
            result = await self.session.execute(stmt)
            codes = result.scalars().all()
        highest = 0
        for code in codes:
            match = _STUDENT_CODE_RE.match(code)
            if match:
                highest = max(highest, int(match.group(2)))
        return format_student_code(year, highest + 1)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save(self, student: Student) -> Student:
        """Insert or update *student* as a whole document.

        Raises:
            DuplicateKeyError: ``email`` or ``student_id`` already taken.
            ConcurrentModificationError: The row changed since it was read.
            StorageError: Any other persistence failure.
        """
        try:
            async with self.session.begin_nested():
                self.session.add(student)
                await self.session.flush()
        except IntegrityError as exc:
            field = _duplicate_field(exc)
            logger.info("Duplicate %s rejected on save", field)
            raise DuplicateKeyError(field) from exc
        except StaleDataError as exc:
            raise ConcurrentModificationError(student.id, attempts=1) from exc
        except SQLAlchemyError as exc:
            logger.error("Storage failure during save: %s", exc)
            raise StorageError("Storage failure during save", operation="save") from exc
        return student

    async def modify_grades(
        self, pk: int, mutate: GradeMutation[T]
    ) -> tuple[Student, T]:
        """Read-modify-write of a student's grade array with optimistic retries.

        *mutate* receives the stored grade list and returns the new list plus
        a result value.  The write is checked against the row's ``version``;
        when another writer got there first, the row is re-read and *mutate*
        re-applied, up to ``settings.max_write_retries`` attempts.

        Raises:
            NotFoundError: The student does not exist (or vanished mid-retry).
            ConcurrentModificationError: Every attempt lost the race.
            StorageError: Any other persistence failure.
        """
        attempts = self.settings.max_write_retries
        for attempt in range(1, attempts + 1):
            student = await self.find_by_id(pk, refresh=attempt > 1)
            if student is None:
                raise NotFoundError("Student not found", details={"id": pk})
            grades, result = mutate(list(student.grades or []))
            try:
                async with self.session.begin_nested():
                    student.grades = grades
                    await self.session.flush()
            except StaleDataError:
                logger.warning(
                    "Version conflict writing grades for student %s (attempt %d/%d)",
                    pk,
                    attempt,
                    attempts,
                )
                self.session.expire(student)
                continue
            except SQLAlchemyError as exc:
                logger.error("Storage failure writing grades for student %s: %s", pk, exc)
                raise StorageError(
                    "Storage failure during modify_grades", operation="modify_grades"
                ) from exc
            return student, result
        raise ConcurrentModificationError(pk, attempts)

    async def delete_by_id(self, pk: int) -> bool:
        """Permanently delete the student row; returns whether a row was removed."""
        with _storage_errors("delete_by_id"):
            async with self.session.begin_nested():
                result = await self.session.execute(
                    delete(Student).where(Student.id == pk)
                )
            return bool(result.rowcount)


# ---------------------------------------------------------------------------
# Enrollments
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ActiveEnrollment:
    """An enrollment blocking deletion, denormalised with its course."""

    id: int
    course_id: int
    course_name: str | None
    course_code: str | None
    status: str
    enrolled_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "course_id": self.course_id,
            "course_name": self.course_name,
            "course_code": self.course_code,
            "status": self.status,
            "enrolled_at": self.enrolled_at.isoformat() if self.enrolled_at else None,
        }


class EnrollmentRepository:
    """Read-only access to enrollments, as needed by the deletion guard."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_active_enrollments(self, student_pk: int) -> list[ActiveEnrollment]:
        """Enrollments of *student_pk* whose status is active, enrolled or in_progress."""
        with _storage_errors("find_active_enrollments"):
            stmt = (
                select(Enrollment, Course)
                .outerjoin(Course, Enrollment.course_id == Course.id)
                .where(
                    Enrollment.student_id == student_pk,
                    Enrollment.status.in_(sorted(ACTIVE_ENROLLMENT_STATUSES)),
                )
                .order_by(Enrollment.created_at, Enrollment.id)
            )
            async with self.session.begin_nested():
                result = await self.session.execute(stmt)
            rows = result.all()
        return [
            ActiveEnrollment(
                id=enrollment.id,
                course_id=enrollment.course_id,
                course_name=course.name if course else None,
                course_code=course.code if course else None,
                status=enrollment.status,
                enrolled_at=enrollment.created_at,
            )
            for enrollment, course in rows
        ]
