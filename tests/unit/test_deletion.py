"""Unit tests for the enrollment-aware deletion guard.

Uses the in-memory repositories from ``tests.fixtures.fake_repositories``.
"""

from __future__ import annotations

import pytest

from campuscore.exceptions import ConflictError, InvalidInputError, NotFoundError
from campuscore.services.deletion import (
    UNVERIFIED_ENROLLMENT,
    BulkDeletionReport,
    BulkOutcome,
    DeletionGuard,
)


@pytest.fixture
def guard(student_repo, enrollment_repo) -> DeletionGuard:
    return DeletionGuard(student_repo, enrollment_repo)


# ---------------------------------------------------------------------------
# can_delete
# ---------------------------------------------------------------------------


async def test_student_without_enrollments_is_deletable(guard, student_repo):
    check = await guard.can_delete(student_repo.rows[1])

    assert check.deletable is True
    assert check.blocking_enrollments == []
    assert check.reason == "No blocking factors"


async def test_active_enrollment_blocks_deletion(guard, student_repo, enrollment_repo):
    enrollment_repo.enroll(1, course_code="MATH-101", status="in_progress")

    check = await guard.can_delete(student_repo.rows[1])

    assert check.deletable is False
    assert check.blocking_enrollments[0]["course_code"] == "MATH-101"
    assert check.reason == "Has active enrollments"


async def test_enrollment_lookup_failure_fails_closed(guard, student_repo, enrollment_repo):
    enrollment_repo.raise_for.add(1)

    check = await guard.can_delete(student_repo.rows[1])

    assert check.deletable is False
    assert check.blocking_enrollments == [UNVERIFIED_ENROLLMENT]


@pytest.mark.parametrize("status", ["completed", "dropped", "withdrawn", "transferred"])
async def test_only_inactive_enrollments_do_not_block(guard, student_repo, enrollment_repo, status):
    enrollment_repo.enroll(1, status=status)

    check = await guard.can_delete(student_repo.rows[1])

    assert check.deletable is True
    assert check.blocking_enrollments == []


async def test_completed_alongside_active_enrollment_blocks(guard, student_repo, enrollment_repo):
    enrollment_repo.enroll(1, course_code="ART-100", status="completed")
    enrollment_repo.enroll(1, course_code="BIO-110", status="active")

    check = await guard.can_delete(student_repo.rows[1])

    assert check.deletable is False
    assert [e["course_code"] for e in check.blocking_enrollments] == ["BIO-110"]


# ---------------------------------------------------------------------------
# delete_one
# ---------------------------------------------------------------------------


async def test_delete_one_removes_the_row(guard, student_repo):
    await guard.delete_one(student_repo.rows[3], actor="u-admin")

    assert 3 not in student_repo.rows


async def test_delete_one_blocked_raises_conflict_and_keeps_row(
    guard, student_repo, enrollment_repo
):
    enrollment_repo.enroll(2)

    with pytest.raises(ConflictError) as exc_info:
        await guard.delete_one(student_repo.rows[2])

    assert exc_info.value.reason == "active_enrollments"
    assert len(exc_info.value.details["active_enrollments"]) == 1
    assert 2 in student_repo.rows


# ---------------------------------------------------------------------------
# bulk_delete
# ---------------------------------------------------------------------------


async def test_bulk_delete_partial_success(guard, student_repo, enrollment_repo):
    enrollment_repo.enroll(2)

    report = await guard.bulk_delete([1, 2, 3], actor="u-admin")

    assert report.outcome is BulkOutcome.PARTIAL_SUCCESS
    assert [r["id"] for r in report.successful] == [1, 3]
    assert [r["id"] for r in report.blocked_by_enrollments] == [2]
    assert report.summary() == {
        "requested": 3,
        "found": 3,
        "deleted": 2,
        "blocked_by_enrollments": 1,
        "failed": 0,
    }
    assert sorted(student_repo.rows) == [2]


async def test_bulk_delete_all_blocked(guard, enrollment_repo):
    enrollment_repo.enroll(1)
    enrollment_repo.enroll(2)

    report = await guard.bulk_delete([1, 2])

    assert report.outcome is BulkOutcome.BLOCKED
    assert report.successful == []


async def test_bulk_delete_continues_after_a_failed_delete(guard, student_repo):
    student_repo.fail_on["delete_by_id"] = {1}

    report = await guard.bulk_delete([1, 2])

    assert report.outcome is BulkOutcome.PARTIAL_SUCCESS
    assert report.failed[0]["id"] == 1
    assert report.failed[0]["error"] == "Deletion failed due to server error"
    assert [r["id"] for r in report.successful] == [2]


async def test_bulk_delete_all_failed(guard, student_repo):
    student_repo.fail_on["delete_by_id"] = {1, 2}

    report = await guard.bulk_delete([1, 2])

    assert report.outcome is BulkOutcome.FAILURE


async def test_bulk_delete_reports_missing_ids_and_dedupes(guard):
    report = await guard.bulk_delete([3, 3, 404])

    assert report.requested == 2
    assert report.found == 1
    assert report.not_found == [404]
    assert report.outcome is BulkOutcome.SUCCESS


async def test_bulk_delete_lookup_failure_is_counted_as_failed(guard, student_repo):
    student_repo.fail_on["find_by_id"] = {1}

    report = await guard.bulk_delete([1, 2])

    assert report.failed == [{"id": 1, "error": "Lookup failed due to server error"}]
    assert report.outcome is BulkOutcome.PARTIAL_SUCCESS


async def test_bulk_delete_empty_list_is_invalid(guard):
    with pytest.raises(InvalidInputError):
        await guard.bulk_delete([])


async def test_bulk_delete_none_found(guard):
    with pytest.raises(NotFoundError):
        await guard.bulk_delete([98, 99])


def test_report_outcome_without_any_candidates_is_failure():
    assert BulkDeletionReport(requested=0).outcome is BulkOutcome.FAILURE


async def test_bulk_delete_continues_after_enrollment_lookup_failure(
    guard, student_repo, enrollment_repo
):
    enrollment_repo.raise_for.add(1)

    report = await guard.bulk_delete([1, 2, 3])

    assert report.outcome is BulkOutcome.PARTIAL_SUCCESS
    assert report.blocked_by_enrollments[0]["active_enrollments"] == [UNVERIFIED_ENROLLMENT]
    assert [r["id"] for r in report.successful] == [2, 3]
    assert sorted(student_repo.rows) == [1]


async def test_bulk_delete_removes_student_with_only_completed_enrollment(
    guard, student_repo, enrollment_repo
):
    enrollment_repo.enroll(1, status="completed")

    report = await guard.bulk_delete([1])

    assert report.outcome is BulkOutcome.SUCCESS
    assert 1 not in student_repo.rows
