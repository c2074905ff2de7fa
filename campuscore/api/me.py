"""Student self-service routes.

Provides:
    GET /me/grades            — The caller's grades and summary.
    GET /me/grades/{subject}  — The caller's grade for one subject.
    GET /me/summary           — The caller's profile and academic summary.

The record is always the one named by the ``student_id`` claim of the
caller's token.
"""

from typing import Any

from fastapi import APIRouter

from campuscore.api.dependencies import PrincipalDep, RecordServiceDep

router = APIRouter(prefix="/me", tags=["self-service"])


@router.get("/grades", summary="My grades")
async def get_my_grades(principal: PrincipalDep, service: RecordServiceDep) -> dict[str, Any]:
    return await service.get_my_grades(principal)


@router.get("/grades/{subject}", summary="My grade for one subject")
async def get_my_grade(
    subject: str, principal: PrincipalDep, service: RecordServiceDep
) -> dict[str, Any]:
    return await service.get_my_grade(principal, subject)


@router.get("/summary", summary="My academic summary")
async def get_my_summary(principal: PrincipalDep, service: RecordServiceDep) -> dict[str, Any]:
    return await service.get_my_summary(principal)
