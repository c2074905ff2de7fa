"""Pydantic v2 request/response schemas for the CampusCore API."""

from campuscore.schemas.grade import GradeOut, GradeRemove, GradeUpsert
from campuscore.schemas.student import (
    BulkDeleteRequest,
    StudentCreate,
    StudentDetailOut,
    StudentFieldUpdate,
    StudentOut,
    StudentUpdate,
)

__all__ = [
    "GradeOut",
    "GradeUpsert",
    "GradeRemove",
    "StudentCreate",
    "StudentUpdate",
    "StudentFieldUpdate",
    "StudentOut",
    "StudentDetailOut",
    "BulkDeleteRequest",
]
