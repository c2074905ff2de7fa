"""Per-student grade collection and the upsert/remove mutations on it.

Grades are persisted as an ordered JSON array of ``{"subject", "score"}``
objects on the student row.  Inside the service they are handled as a
:class:`GradeBook`, a keyed collection indexed by the normalised subject
(trimmed and case-folded), so that ``"Math"`` and ``" math "`` address the
same record.  Conversion to and from the ordered array only happens at the
persistence boundary (:meth:`GradeBook.from_records` / :meth:`GradeBook.to_records`).

Usage::

    from campuscore.services.gradebook import upsert_grade, remove_grade

    grades, action = upsert_grade(student.grades, "Math", 85)   # action == "added"
    grades, removed = remove_grade(grades, "math")
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from numbers import Real
from typing import Any, Literal

from campuscore.exceptions import InvalidInputError, NotFoundError

MIN_SCORE: float = 0.0
MAX_SCORE: float = 100.0

UpsertAction = Literal["added", "updated"]


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def normalize_subject(subject: Any) -> str:
    """Return the trimmed subject, rejecting non-strings and blank values.

    Raises:
        InvalidInputError: If *subject* is not a string or is empty after trimming.
    """
    if not isinstance(subject, str) or not subject.strip():
        raise InvalidInputError(
            "Subject must be a non-empty string",
            details={"field": "subject"},
        )
    return subject.strip()


def subject_key(subject: str) -> str:
    """Case-insensitive lookup key for a subject label."""
    return subject.strip().casefold()


def validate_score(score: Any) -> float:
    """Return *score* as a float if it is a finite number within [0, 100].

    Booleans and numeric strings are rejected rather than coerced.

    Raises:
        InvalidInputError: If the score is missing, non-numeric, not finite,
            or outside the inclusive range.
    """
    if isinstance(score, bool) or not isinstance(score, Real):
        raise InvalidInputError(
            "Score must be a number between 0 and 100",
            details={"field": "score", "received": repr(score)},
        )
    value = float(score)
    if not math.isfinite(value) or not MIN_SCORE <= value <= MAX_SCORE:
        raise InvalidInputError(
            "Score must be a number between 0 and 100",
            details={"field": "score", "received": repr(score)},
        )
    return value


# ---------------------------------------------------------------------------
# Value object and keyed collection
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GradeRecord:
    """A single subject/score pair owned by a student.

    Attributes:
        subject: Trimmed subject label in its original case.
        score: Score in the inclusive range [0, 100].
    """

    subject: str
    score: float

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> GradeRecord:
        return cls(subject=str(raw["subject"]).strip(), score=float(raw["score"]))

    def to_dict(self) -> dict[str, Any]:
        return {"subject": self.subject, "score": self.score}


class GradeBook:
    """Ordered, subject-keyed collection of :class:`GradeRecord` objects.

    Keys are normalised subjects; iteration follows insertion order, and an
    update keeps the record in its original position.  Sequences read from
    storage that already contain colliding subjects keep the first record.
    """

    def __init__(self, records: Iterable[GradeRecord] = ()) -> None:
        self._records: dict[str, GradeRecord] = {}
        for record in records:
            self._records.setdefault(subject_key(record.subject), record)

    # ------------------------------------------------------------------
    # Persistence boundary
    # ------------------------------------------------------------------

    @classmethod
    def from_records(cls, raw: Iterable[Mapping[str, Any] | GradeRecord] | None) -> GradeBook:
        """Build a grade book from the stored array (dicts or records)."""
        return cls(
            item if isinstance(item, GradeRecord) else GradeRecord.from_dict(item)
            for item in (raw or [])
        )

    def to_records(self) -> list[dict[str, Any]]:
        """Flatten back to the ordered array stored on the student row."""
        return [record.to_dict() for record in self._records.values()]

    # ------------------------------------------------------------------
    # Collection protocol
    # ------------------------------------------------------------------

    def __iter__(self) -> Iterator[GradeRecord]:
        return iter(self._records.values())

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, subject: object) -> bool:
        return isinstance(subject, str) and subject_key(subject) in self._records

    @property
    def subjects(self) -> list[str]:
        return [record.subject for record in self._records.values()]

    def get(self, subject: str) -> GradeRecord:
        """Return the record for *subject* (case-insensitive).

        Raises:
            InvalidInputError: If *subject* is blank.
            NotFoundError: If no grade exists for the subject; the error lists
                the available subjects.
        """
        key = subject_key(normalize_subject(subject))
        try:
            return self._records[key]
        except KeyError:
            raise NotFoundError(
                "Grade not found for the specified subject",
                available_subjects=self.subjects,
            ) from None

    def filter_subjects(self, needle: str | None) -> list[GradeRecord]:
        """Records whose subject contains *needle*, case-insensitively."""
        if not needle:
            return list(self)
        folded = needle.strip().casefold()
        return [r for r in self._records.values() if folded in r.subject.casefold()]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def upsert(self, subject: Any, score: Any) -> tuple[GradeRecord, UpsertAction]:
        """Insert or overwrite the grade for *subject*.

        An existing record keeps its position and its original subject label;
        only the score changes.  A new record is appended with the trimmed
        subject as given.

        Raises:
            InvalidInputError: If the subject or score is invalid.
        """
        label = normalize_subject(subject)
        value = validate_score(score)
        key = subject_key(label)
        existing = self._records.get(key)
        if existing is not None:
            record = GradeRecord(subject=existing.subject, score=value)
            self._records[key] = record
            return record, "updated"
        record = GradeRecord(subject=label, score=value)
        self._records[key] = record
        return record, "added"

    def remove(self, subject: Any) -> GradeRecord:
        """Remove and return the grade for *subject*.

        Raises:
            InvalidInputError: If *subject* is blank.
            NotFoundError: If no grade exists for the subject.
        """
        record = self.get(subject)
        del self._records[subject_key(record.subject)]
        return record


# ---------------------------------------------------------------------------
# Record mutator (pure functions over the stored array)
# ---------------------------------------------------------------------------


def upsert_grade(
    grades: Iterable[Mapping[str, Any] | GradeRecord] | None,
    subject: Any,
    score: Any,
) -> tuple[list[dict[str, Any]], UpsertAction]:
    """Return a new grade array with *subject* set to *score*, plus the action."""
    book = GradeBook.from_records(grades)
    _, action = book.upsert(subject, score)
    return book.to_records(), action


def remove_grade(
    grades: Iterable[Mapping[str, Any] | GradeRecord] | None,
    subject: Any,
) -> tuple[list[dict[str, Any]], GradeRecord]:
    """Return a new grade array without *subject*, plus the removed record."""
    book = GradeBook.from_records(grades)
    removed = book.remove(subject)
    return book.to_records(), removed
