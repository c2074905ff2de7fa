"""Unit tests for the SQLAlchemy repositories (campuscore/repositories.py).

The session is a mock, so these tests cover error translation, the retry
loop and row mapping, not SQL correctness.
"""

from __future__ import annotations

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from campuscore.config import Settings
from campuscore.exceptions import (
    ConcurrentModificationError,
    DuplicateKeyError,
    NotFoundError,
    StorageError,
)
from campuscore.models import Course, Enrollment
from campuscore.repositories import (
    EnrollmentRepository,
    StudentRepository,
    format_student_code,
)
from campuscore.services.gradebook import upsert_grade
from tests.fixtures.fake_repositories import make_student


@pytest.fixture
def session() -> MagicMock:
    """Mock AsyncSession whose ``begin_nested()`` works as an async context manager."""
    session = MagicMock()
    session.add = MagicMock(return_value=None)
    session.expire = MagicMock(return_value=None)
    session.flush = AsyncMock(return_value=None)
    session.get = AsyncMock(return_value=None)
    session.execute = AsyncMock(return_value=MagicMock())
    nested = MagicMock()
    nested.__aenter__ = AsyncMock(return_value=None)
    nested.__aexit__ = AsyncMock(return_value=False)
    session.begin_nested = MagicMock(return_value=nested)
    return session


@pytest.fixture
def repo(session) -> StudentRepository:
    return StudentRepository(session, Settings(max_write_retries=2))


def test_format_student_code_pads_sequence():
    assert format_student_code(2025, 7) == "STU-2025-0007"
    assert format_student_code(2025, 12345) == "STU-2025-12345"


async def test_save_translates_unique_violation(repo, session):
    session.flush.side_effect = IntegrityError(
        "INSERT INTO students ...",
        {},
        Exception('duplicate key value violates unique constraint "students_email_key"'),
    )

    with pytest.raises(DuplicateKeyError) as exc_info:
        await repo.save(make_student(9))

    assert exc_info.value.field == "email"


async def test_save_translates_driver_failure(repo, session):
    session.flush.side_effect = OperationalError("UPDATE students ...", {}, Exception("gone"))

    with pytest.raises(StorageError) as exc_info:
        await repo.save(make_student(9))

    assert exc_info.value.operation == "save"


async def test_find_by_id_translates_driver_failure(repo, session):
    session.get.side_effect = OperationalError("SELECT", {}, Exception("connection refused"))

    with pytest.raises(StorageError):
        await repo.find_by_id(1)


async def test_next_student_code_uses_highest_sequence(repo, session):
    result = MagicMock()
    result.scalars.return_value.all.return_value = [
        "STU-2025-0002",
        "STU-2025-0010",
        "STU-2025-custom",
    ]
    session.execute.return_value = result

    assert await repo.next_student_code(2025) == "STU-2025-0011"


async def test_modify_grades_applies_mutation(repo, session):
    student = make_student(1)
    session.get.return_value = student

    updated, action = await repo.modify_grades(1, lambda g: upsert_grade(g, "Math", 90))

    assert action == "added"
    assert updated.grades == [{"subject": "Math", "score": 90.0}]


async def test_modify_grades_retries_then_gives_up(repo, session):
    session.get.return_value = make_student(1)
    session.flush.side_effect = StaleDataError("version mismatch")
    calls = []

    def mutate(grades):
        calls.append(1)
        return upsert_grade(grades, "Math", 90)

    with pytest.raises(ConcurrentModificationError) as exc_info:
        await repo.modify_grades(1, mutate)

    assert exc_info.value.attempts == 2
    assert len(calls) == 2
    assert session.expire.call_count == 2


async def test_modify_grades_succeeds_after_one_conflict(repo, session):
    # The retry re-reads the row, so each read returns the stored state.
    session.get.side_effect = [make_student(1), make_student(1)]
    session.flush.side_effect = [StaleDataError("version mismatch"), None]

    _, action = await repo.modify_grades(1, lambda g: upsert_grade(g, "Art", 70))

    assert action == "added"
    assert session.get.await_count == 2


async def test_modify_grades_missing_student(repo):
    with pytest.raises(NotFoundError):
        await repo.modify_grades(1, lambda g: upsert_grade(g, "Art", 70))


async def test_delete_by_id_reports_removed_row(repo, session):
    session.execute.return_value = MagicMock(rowcount=1)

    assert await repo.delete_by_id(1) is True


async def test_find_active_enrollments_maps_rows(session):
    enrollment = Enrollment(id=5, student_id=1, course_id=2, status="in_progress")
    enrollment.created_at = datetime(2025, 2, 1, 8, 30)
    course = Course(id=2, name="Algebra", code="MATH-101")
    result = MagicMock()
    result.all.return_value = [(enrollment, course)]
    session.execute.return_value = result

    active = await EnrollmentRepository(session).find_active_enrollments(1)

    assert [e.to_dict() for e in active] == [
        {
            "id": 5,
            "course_id": 2,
            "course_name": "Algebra",
            "course_code": "MATH-101",
            "status": "in_progress",
            "enrolled_at": "2025-02-01T08:30:00",
        }
    ]


async def test_find_by_id_runs_in_savepoint(repo, session):
    session.get.return_value = make_student(1)

    await repo.find_by_id(1)

    session.begin_nested.assert_called_once()


async def test_failed_enrollment_lookup_rolls_back_only_its_savepoint(session):
    session.execute.side_effect = OperationalError("SELECT", {}, Exception("timeout"))

    with pytest.raises(StorageError) as exc_info:
        await EnrollmentRepository(session).find_active_enrollments(1)

    assert exc_info.value.operation == "find_active_enrollments"
    session.begin_nested.assert_called_once()
    savepoint = session.begin_nested.return_value
    # The savepoint context saw the failure, so it is rolled back on exit.
    assert savepoint.__aexit__.await_args.args[0] is OperationalError


async def test_grade_write_is_applied_inside_savepoint(repo, session):
    student = make_student(1)
    session.get.return_value = student
    seen = []
    savepoint = session.begin_nested.return_value

    async def record_entry():
        seen.append(list(student.grades))

    savepoint.__aenter__.side_effect = record_entry

    await repo.modify_grades(1, lambda g: upsert_grade(g, "Math", 90))

    # find_by_id opens one savepoint, the write opens the second
    assert seen == [[], []]
    assert student.grades == [{"subject": "Math", "score": 90.0}]
