"""Student record routes.

Provides:
    POST   /students                 — Create a student (admin).
    GET    /students                 — Paginated list without grades (admin, teacher).
    GET    /students/{id}            — One student with grades (admin, teacher).
    PUT    /students/{id}            — Update supplied fields (admin).
    PATCH  /students/{id}            — Update a single field (admin).
    GET    /students/{id}/deletable  — Report whether deletion is blocked (admin).
    DELETE /students/{id}            — Permanently delete (admin).
    POST   /students/bulk-delete     — Delete several students independently (admin).

Domain errors propagate to the handlers registered in ``campuscore.main``.
"""

from typing import Any

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse

from campuscore.api.dependencies import PrincipalDep, RecordServiceDep
from campuscore.schemas.student import (
    BulkDeleteRequest,
    StudentCreate,
    StudentFieldUpdate,
    StudentUpdate,
)
from campuscore.services.deletion import BulkOutcome

router = APIRouter(prefix="/students", tags=["students"])

BULK_STATUS: dict[BulkOutcome, int] = {
    BulkOutcome.SUCCESS: status.HTTP_200_OK,
    BulkOutcome.PARTIAL_SUCCESS: status.HTTP_207_MULTI_STATUS,
    BulkOutcome.BLOCKED: status.HTTP_409_CONFLICT,
    BulkOutcome.FAILURE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create a student",
    responses={
        201: {"description": "Student created"},
        400: {"description": "Invalid input"},
        403: {"description": "Admin role required"},
        409: {"description": "Duplicate email or student id"},
    },
)
async def create_student(
    payload: StudentCreate,
    principal: PrincipalDep,
    service: RecordServiceDep,
) -> dict[str, Any]:
    return await service.create_student(principal, payload)


@router.get("", summary="List students")
async def list_students(
    principal: PrincipalDep,
    service: RecordServiceDep,
    page: str | None = Query(default=None, description="Page number (default 1)"),
    limit: str | None = Query(default=None, description="Page size (default 10)"),
) -> dict[str, Any]:
    """Return one page of students, newest first.

    ``page`` and ``limit`` are taken as raw strings: invalid values fall back
    to the defaults instead of failing the request.
    """
    return await service.list_students(principal, page, limit)


@router.post(
    "/bulk-delete",
    summary="Delete several students",
    responses={
        200: {"description": "All candidates deleted"},
        207: {"description": "Some candidates deleted, others blocked or failed"},
        409: {"description": "Every found candidate blocked by active enrollments"},
        500: {"description": "All deletion attempts failed"},
    },
)
async def bulk_delete_students(
    payload: BulkDeleteRequest,
    principal: PrincipalDep,
    service: RecordServiceDep,
) -> JSONResponse:
    envelope, report = await service.bulk_delete_students(principal, payload.student_ids)
    return JSONResponse(status_code=BULK_STATUS[report.outcome], content=envelope)


@router.get("/{student_id}", summary="Get a student with grades")
async def get_student(
    student_id: int, principal: PrincipalDep, service: RecordServiceDep
) -> dict[str, Any]:
    return await service.get_student(principal, student_id)


@router.put("/{student_id}", summary="Update a student")
async def update_student(
    student_id: int,
    payload: StudentUpdate,
    principal: PrincipalDep,
    service: RecordServiceDep,
) -> dict[str, Any]:
    return await service.update_student(principal, student_id, payload)


@router.patch("/{student_id}", summary="Update a single student field")
async def update_student_field(
    student_id: int,
    payload: StudentFieldUpdate,
    principal: PrincipalDep,
    service: RecordServiceDep,
) -> dict[str, Any]:
    return await service.update_student_field(principal, student_id, payload)


@router.get("/{student_id}/deletable", summary="Check whether a student can be deleted")
async def check_student_deletable(
    student_id: int, principal: PrincipalDep, service: RecordServiceDep
) -> dict[str, Any]:
    return await service.check_deletable(principal, student_id)


@router.delete(
    "/{student_id}",
    summary="Delete a student",
    responses={
        200: {"description": "Student deleted"},
        404: {"description": "Student not found"},
        409: {"description": "Student has active enrollments"},
    },
)
async def delete_student(
    student_id: int, principal: PrincipalDep, service: RecordServiceDep
) -> dict[str, Any]:
    return await service.delete_student(principal, student_id)
