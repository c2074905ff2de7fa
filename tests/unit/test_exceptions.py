"""Unit tests for custom exception classes (campuscore/exceptions.py).

Tests verify that each exception class:
1. Carries the category the transport maps to a status code.
2. Stores its constructor arguments as instance attributes and in ``details``.
3. Has a useful string representation that includes the message.
"""

from __future__ import annotations

import pytest

from campuscore.exceptions import (
    ConcurrentModificationError,
    ConflictError,
    DuplicateKeyError,
    ForbiddenError,
    InvalidInputError,
    MissingClaimError,
    NotFoundError,
    RecordsError,
    StorageError,
)


@pytest.mark.parametrize(
    ("exc", "category"),
    [
        (InvalidInputError("bad"), "invalid_input"),
        (NotFoundError("missing"), "not_found"),
        (ConflictError("clash"), "conflict"),
        (DuplicateKeyError("email"), "conflict"),
        (ConcurrentModificationError(1, 3), "conflict"),
        (ForbiddenError("nope"), "forbidden"),
        (MissingClaimError(), "missing_claim"),
        (StorageError("down"), "storage_error"),
    ],
)
def test_every_error_is_a_records_error_with_a_category(exc, category):
    assert isinstance(exc, RecordsError)
    assert exc.category == category


def test_records_error_str_is_the_message():
    exc = InvalidInputError("Score must be a number between 0 and 100")

    assert str(exc) == "Score must be a number between 0 and 100"
    assert exc.details == {}


def test_not_found_exposes_available_subjects():
    exc = NotFoundError("Grade not found", available_subjects=["Math"])

    assert exc.available_subjects == ["Math"]
    assert exc.details == {"available_subjects": ["Math"]}


def test_duplicate_key_records_field_and_reason():
    exc = DuplicateKeyError("student_id")

    assert exc.field == "student_id"
    assert exc.reason == "duplicate_key"
    assert exc.details == {"conflict_field": "student_id", "conflict_reason": "duplicate_key"}


def test_concurrent_modification_records_attempts():
    exc = ConcurrentModificationError(7, 3)

    assert exc.student_pk == 7
    assert exc.details["attempts"] == 3
    assert "3 attempt" in str(exc)


def test_missing_claim_names_the_claim():
    exc = MissingClaimError()

    assert exc.claim == "student_id"
    assert "student_id" in exc.message


def test_storage_error_records_operation():
    assert StorageError("down", operation="save").details == {"operation": "save"}
    assert StorageError("down").details == {}
