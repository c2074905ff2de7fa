"""Pydantic v2 schemas for grade payloads.

Subject and score are accepted as raw JSON values and validated by the
grade book (:mod:`campuscore.services.gradebook`), so a string score such as
``"85"`` is rejected instead of being coerced.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class GradeOut(BaseModel):
    """A single subject/score pair."""

    model_config = ConfigDict(from_attributes=True)

    subject: str
    score: float


class GradeUpsert(BaseModel):
    """Request payload for POST /grades/student/{id}."""

    subject: Any = Field(default=None, description="Subject name (case-insensitive key)")
    score: Any = Field(default=None, description="Score between 0 and 100 inclusive")


class GradeRemove(BaseModel):
    """Request payload for DELETE /grades/student/{id}."""

    subject: Any = Field(default=None, description="Subject whose grade is removed")
