"""Grade routes for staff, plus the scoped per-student grade read.

Provides:
    POST   /grades/student/{id}  — Add or update one subject grade (admin, teacher).
    GET    /grades/student/{id}  — Grades of a student.  Students may call it
                                   too, but always receive their own record.
    DELETE /grades/student/{id}  — Remove one subject grade (admin, teacher).
    GET    /grades/summary       — Paginated overview with optional subject filter.
"""

from typing import Any

from fastapi import APIRouter, Body, Query

from campuscore.api.dependencies import PrincipalDep, RecordServiceDep
from campuscore.schemas.grade import GradeRemove, GradeUpsert

router = APIRouter(prefix="/grades", tags=["grades"])


@router.post("/student/{student_id}", summary="Add or update a grade")
async def upsert_grade(
    student_id: int,
    payload: GradeUpsert,
    principal: PrincipalDep,
    service: RecordServiceDep,
) -> dict[str, Any]:
    return await service.upsert_grade(principal, student_id, payload.subject, payload.score)


@router.get("/student/{student_id}", summary="Get a student's grades")
async def get_student_grades(
    student_id: str, principal: PrincipalDep, service: RecordServiceDep
) -> dict[str, Any]:
    """Staff pass a numeric id; a student's path segment is ignored, so any value works."""
    return await service.get_student_grades(principal, student_id)


@router.delete("/student/{student_id}", summary="Remove a grade")
async def remove_grade(
    student_id: int,
    principal: PrincipalDep,
    service: RecordServiceDep,
    payload: GradeRemove | None = Body(default=None),
    subject: str | None = Query(default=None, description="Subject, if not sent in the body"),
) -> dict[str, Any]:
    """Remove one subject grade; the subject comes from the body or the query string."""
    target = payload.subject if payload is not None and payload.subject is not None else subject
    return await service.remove_grade(principal, student_id, target)


@router.get("/summary", summary="Grades overview across students")
async def grades_summary(
    principal: PrincipalDep,
    service: RecordServiceDep,
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    subject: str | None = Query(default=None, description="Case-insensitive subject substring"),
) -> dict[str, Any]:
    return await service.grades_overview(principal, page, limit, subject)
