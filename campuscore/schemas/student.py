"""Pydantic v2 schemas for student records."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from campuscore.schemas.grade import GradeOut

MIN_AGE = 3
MAX_AGE = 25

UPDATABLE_FIELDS: tuple[str, ...] = ("name", "email", "age", "grade_level", "student_id")


class StudentCreate(BaseModel):
    """Request payload for POST /students.

    Attributes:
        name: Full name.
        email: Unique e-mail; stored lower-cased.
        age: Age in years, 3–25 inclusive.
        grade_level: Free-text grouping such as ``"10th"``.
        student_id: Optional admin-provided id; generated as
            ``STU-<year>-<seq>`` when omitted.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    age: int = Field(..., ge=MIN_AGE, le=MAX_AGE)
    grade_level: str = Field(..., min_length=1, max_length=50)
    student_id: str | None = Field(default=None, min_length=1, max_length=32)


class StudentUpdate(BaseModel):
    """Request payload for PUT /students/{id}; only supplied fields change."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str | None = Field(default=None, min_length=1, max_length=200)
    email: EmailStr | None = None
    age: int | None = Field(default=None, ge=MIN_AGE, le=MAX_AGE)
    grade_level: str | None = Field(default=None, min_length=1, max_length=50)
    student_id: str | None = Field(default=None, min_length=1, max_length=32)


class StudentFieldUpdate(BaseModel):
    """Request payload for PATCH /students/{id}: a single field/value pair."""

    field: Literal["name", "email", "age", "grade_level", "student_id"]
    value: Any


class StudentOut(BaseModel):
    """Student profile without grades (list views)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    student_id: str
    name: str
    email: str
    age: int
    grade_level: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class StudentDetailOut(StudentOut):
    """Student profile including the ordered grade list."""

    grades: list[GradeOut] = Field(default_factory=list)


class BulkDeleteRequest(BaseModel):
    """Request payload for POST /students/bulk-delete."""

    student_ids: list[int] = Field(default_factory=list)
