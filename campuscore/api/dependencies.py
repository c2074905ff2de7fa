"""FastAPI dependency injection helpers.

Provides reusable ``Depends``-compatible callables for:
- ``get_db()``                     → async database session
- ``get_settings()``               → application settings
- ``get_principal()``              → authenticated principal from the bearer token
- ``get_student_repository()``     → student repository bound to the session
- ``get_enrollment_repository()``  → enrollment repository bound to the session
- ``get_record_service()``         → record service wired to both repositories
"""

import logging
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from campuscore.config import Settings
from campuscore.config import get_settings as _get_settings_impl
from campuscore.database import get_async_db
from campuscore.repositories import EnrollmentRepository, StudentRepository
from campuscore.services.access import Principal
from campuscore.services.records import RecordService

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Database session
# ---------------------------------------------------------------------------


async def get_db(
    db: AsyncSession = Depends(get_async_db),
) -> AsyncSession:
    """Provide an async database session to route handlers."""
    return db


DBDep = Annotated[AsyncSession, Depends(get_db)]


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def get_settings() -> Settings:
    """Return the cached application settings."""
    return _get_settings_impl()


SettingsDep = Annotated[Settings, Depends(get_settings)]


# ---------------------------------------------------------------------------
# Principal (identity provider edge)
# ---------------------------------------------------------------------------


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_principal(
    settings: SettingsDep,
    authorization: str | None = Header(default=None),
) -> Principal:
    """Decode the bearer token issued by the identity provider into a principal.

    The token is only verified and read here; role and ownership decisions
    are made by :mod:`campuscore.services.access`.

    Raises:
        HTTPException: 401 if the header is missing, malformed, expired or
            carries an invalid signature.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise _unauthorized("Access denied. No token provided.")
    token = authorization.split(" ", 1)[1].strip()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Session expired")
    except jwt.InvalidTokenError as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise _unauthorized("Invalid token")
    return Principal.from_claims(claims)


PrincipalDep = Annotated[Principal, Depends(get_principal)]


# ---------------------------------------------------------------------------
# Repositories and services
# ---------------------------------------------------------------------------


def get_student_repository(db: DBDep, settings: SettingsDep) -> StudentRepository:
    return StudentRepository(db, settings)


def get_enrollment_repository(db: DBDep) -> EnrollmentRepository:
    return EnrollmentRepository(db)


def get_record_service(
    students: Annotated[StudentRepository, Depends(get_student_repository)],
    enrollments: Annotated[EnrollmentRepository, Depends(get_enrollment_repository)],
) -> RecordService:
    """Build the per-request :class:`RecordService`."""
    return RecordService(students, enrollments)


RecordServiceDep = Annotated[RecordService, Depends(get_record_service)]
