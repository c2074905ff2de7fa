"""Unit tests for the grade book and the upsert/remove mutations.

Covers subject normalisation, score validation, keyed lookups, and the
ordering guarantees of the stored grade array.  Pure functions only; no
database or HTTP layer is involved.
"""

from __future__ import annotations

import math

import pytest

from campuscore.exceptions import InvalidInputError, NotFoundError
from campuscore.services.gradebook import (
    GradeBook,
    GradeRecord,
    normalize_subject,
    remove_grade,
    upsert_grade,
    validate_score,
)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("subject", ["", "   ", None, 42, ["Math"]])
def test_normalize_subject_rejects_blank_and_non_strings(subject):
    with pytest.raises(InvalidInputError):
        normalize_subject(subject)


def test_normalize_subject_trims_but_keeps_case():
    assert normalize_subject("  Organic Chemistry ") == "Organic Chemistry"


@pytest.mark.parametrize("score", [0, 100, 0.0, 100.0, 59.99, 85])
def test_validate_score_accepts_inclusive_range(score):
    assert validate_score(score) == float(score)


@pytest.mark.parametrize(
    "score", [-0.01, 100.01, "85", None, True, False, math.nan, math.inf, [90]]
)
def test_validate_score_rejects_out_of_range_and_non_numbers(score):
    """Numeric strings and booleans are rejected, not coerced."""
    with pytest.raises(InvalidInputError) as exc_info:
        validate_score(score)
    assert exc_info.value.details["field"] == "score"


# ---------------------------------------------------------------------------
# GradeBook
# ---------------------------------------------------------------------------


def test_lookup_is_case_and_whitespace_insensitive():
    book = GradeBook.from_records([{"subject": "Math", "score": 90}])

    assert " MATH " in book
    assert book.get("math").score == 90.0


def test_get_missing_subject_lists_available_subjects():
    book = GradeBook.from_records(
        [{"subject": "Math", "score": 90}, {"subject": "Art", "score": 70}]
    )

    with pytest.raises(NotFoundError) as exc_info:
        book.get("Biology")

    assert exc_info.value.available_subjects == ["Math", "Art"]
    assert exc_info.value.details["available_subjects"] == ["Math", "Art"]


def test_stored_duplicates_keep_the_first_record():
    book = GradeBook.from_records(
        [{"subject": "Math", "score": 90}, {"subject": "math ", "score": 10}]
    )

    assert len(book) == 1
    assert book.get("Math").score == 90.0


def test_filter_subjects_matches_substring_case_insensitively():
    book = GradeBook.from_records(
        [
            {"subject": "Mathematics", "score": 90},
            {"subject": "Art", "score": 70},
            {"subject": "Applied Math", "score": 60},
        ]
    )

    assert [r.subject for r in book.filter_subjects("MATH")] == ["Mathematics", "Applied Math"]
    assert len(book.filter_subjects(None)) == 3


# ---------------------------------------------------------------------------
# Upsert
# ---------------------------------------------------------------------------


def test_upsert_appends_new_subject_with_trimmed_label():
    grades, action = upsert_grade([{"subject": "Math", "score": 90}], "  Art ", 75)

    assert action == "added"
    assert grades == [
        {"subject": "Math", "score": 90.0},
        {"subject": "Art", "score": 75.0},
    ]


def test_upsert_existing_subject_keeps_position_and_original_label():
    stored = [
        {"subject": "Math", "score": 90},
        {"subject": "Art", "score": 70},
        {"subject": "History", "score": 60},
    ]

    grades, action = upsert_grade(stored, "art", 99)

    assert action == "updated"
    assert grades[1] == {"subject": "Art", "score": 99.0}
    assert [g["subject"] for g in grades] == ["Math", "Art", "History"]


def test_upsert_never_creates_two_records_for_one_subject():
    grades, _ = upsert_grade([], "Math", 50)
    grades, _ = upsert_grade(grades, "MATH", 60)
    grades, _ = upsert_grade(grades, " math", 70)

    assert grades == [{"subject": "Math", "score": 70.0}]


def test_repeating_an_upsert_yields_the_same_state():
    stored = [{"subject": "Art", "score": 70}]

    first, first_action = upsert_grade(stored, "Math", 85)
    second, second_action = upsert_grade(first, "Math", 85)

    assert first_action == "added"
    assert second_action == "updated"
    assert second == first


@pytest.mark.parametrize(
    "stored",
    [
        [],
        [{"subject": "Art", "score": 70}],
        [{"subject": "History", "score": 60}, {"subject": "Art", "score": 70}],
    ],
)
def test_removing_a_new_subject_restores_the_grades(stored):
    added, _ = upsert_grade(stored, "Chemistry", 77.5)

    restored, removed = remove_grade(added, "chemistry")

    assert removed == GradeRecord(subject="Chemistry", score=77.5)
    assert restored == GradeBook.from_records(stored).to_records()


def test_upsert_does_not_mutate_the_input_array():
    stored = [{"subject": "Math", "score": 90}]

    upsert_grade(stored, "Math", 10)

    assert stored == [{"subject": "Math", "score": 90}]


def test_upsert_invalid_score_leaves_book_unchanged():
    book = GradeBook.from_records([{"subject": "Math", "score": 90}])

    with pytest.raises(InvalidInputError):
        book.upsert("Math", 101)

    assert book.to_records() == [{"subject": "Math", "score": 90.0}]


# ---------------------------------------------------------------------------
# Remove
# ---------------------------------------------------------------------------


def test_remove_returns_removed_record_and_keeps_order_of_the_rest():
    stored = [
        {"subject": "Math", "score": 90},
        {"subject": "Art", "score": 70},
        {"subject": "History", "score": 60},
    ]

    grades, removed = remove_grade(stored, "ART")

    assert removed == GradeRecord(subject="Art", score=70.0)
    assert [g["subject"] for g in grades] == ["Math", "History"]


def test_remove_unknown_subject_raises_not_found():
    with pytest.raises(NotFoundError):
        remove_grade([{"subject": "Math", "score": 90}], "Biology")


def test_remove_blank_subject_raises_invalid_input():
    with pytest.raises(InvalidInputError):
        remove_grade([{"subject": "Math", "score": 90}], "  ")
