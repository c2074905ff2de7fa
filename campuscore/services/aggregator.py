"""Grade statistics: average, extremes, letter distribution and rankings.

Every function here is pure over its input and accepts either the stored
grade array (dicts) or :class:`~campuscore.services.gradebook.GradeRecord`
objects.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from campuscore.services.gradebook import GradeRecord

# Lower bounds of the letter buckets, highest first.  A covers [90, 100].
LETTER_BOUNDS: tuple[tuple[str, float], ...] = (
    ("A", 90.0),
    ("B", 80.0),
    ("C", 70.0),
    ("D", 60.0),
    ("F", 0.0),
)

GradeInput = Iterable[Mapping[str, Any] | GradeRecord] | None

TWO_PLACES = Decimal("0.01")


@dataclass
class GradeSummary:
    """Aggregate statistics over one student's grades.

    Attributes:
        total_subjects: Number of graded subjects.
        average_grade: Mean score rounded to 2 dp, ``None`` when there are no grades.
        highest_grade: First record holding the maximum score, or ``None``.
        lowest_grade: First record holding the minimum score, or ``None``.
        grade_distribution: Count of records per letter bucket.
    """

    total_subjects: int
    average_grade: float | None
    highest_grade: GradeRecord | None
    lowest_grade: GradeRecord | None
    grade_distribution: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_subjects": self.total_subjects,
            "average_grade": self.average_grade,
            "highest_grade": self.highest_grade.to_dict() if self.highest_grade else None,
            "lowest_grade": self.lowest_grade.to_dict() if self.lowest_grade else None,
            "grade_distribution": dict(self.grade_distribution),
        }


def _records(grades: GradeInput) -> list[GradeRecord]:
    return [
        item if isinstance(item, GradeRecord) else GradeRecord.from_dict(item)
        for item in (grades or [])
    ]


def letter_for(score: float) -> str:
    """Return the letter bucket for *score*; buckets are closed below, open above."""
    for letter, lower in LETTER_BOUNDS:
        if score >= lower:
            return letter
    return "F"


def average(grades: GradeInput) -> float | None:
    """Arithmetic mean of the scores rounded half-up to 2 dp; ``None`` for no grades.

    ``80.125`` becomes ``80.13``; the built-in ``round`` would give ``80.12``.
    """
    records = _records(grades)
    if not records:
        return None
    mean = sum(r.score for r in records) / len(records)
    return float(Decimal(str(mean)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def distribution(grades: GradeInput) -> dict[str, int]:
    """Count of records per letter bucket; every bucket is always present."""
    counts = {letter: 0 for letter, _ in LETTER_BOUNDS}
    for record in _records(grades):
        counts[letter_for(record.score)] += 1
    return counts


def highest(grades: GradeInput) -> GradeRecord | None:
    """Record with the maximum score; the earliest one wins a tie."""
    best: GradeRecord | None = None
    for record in _records(grades):
        if best is None or record.score > best.score:
            best = record
    return best


def lowest(grades: GradeInput) -> GradeRecord | None:
    """Record with the minimum score; the earliest one wins a tie."""
    worst: GradeRecord | None = None
    for record in _records(grades):
        if worst is None or record.score < worst.score:
            worst = record
    return worst


def grades_by_subject(grades: GradeInput) -> dict[str, float]:
    return {r.subject: r.score for r in _records(grades)}


def summarize(grades: GradeInput) -> GradeSummary:
    """Compute the full :class:`GradeSummary` for one grade set."""
    records = _records(grades)
    return GradeSummary(
        total_subjects=len(records),
        average_grade=average(records),
        highest_grade=highest(records),
        lowest_grade=lowest(records),
        grade_distribution=distribution(records),
    )


def rank_students(rows: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Rank students by ``average_grade``, highest first.

    Uses standard competition ranking (1, 2, 2, 4).  Students with equal
    averages keep their input order.  Rows whose average is ``None`` are
    placed last with ``rank = None``.

    Args:
        rows: Mappings carrying at least an ``average_grade`` key.

    Returns:
        New dicts (copies of the input rows) with a ``rank`` key added.
    """
    graded = [dict(r) for r in rows if r.get("average_grade") is not None]
    ungraded = [dict(r) for r in rows if r.get("average_grade") is None]
    graded.sort(key=lambda r: r["average_grade"], reverse=True)

    previous: float | None = None
    rank = 0
    for position, row in enumerate(graded, start=1):
        if row["average_grade"] != previous:
            rank = position
            previous = row["average_grade"]
        row["rank"] = rank
    for row in ungraded:
        row["rank"] = None
    return graded + ungraded
