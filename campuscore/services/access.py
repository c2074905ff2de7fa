"""Authorization scope and pagination for student-record access.

This module is the single authorization decision point of the service.  The
principal is always passed in explicitly; nothing here reads request state.

Roles:
    admin, teacher -- administrative scope: any student record, paginated lists.
    student        -- self-service scope: only the record named by the
                      ``student_id`` claim; any id supplied in the request
                      path is ignored.
"""

from __future__ import annotations

import enum
import logging
import math
from collections.abc import Collection, Mapping
from dataclasses import dataclass
from typing import Any

from campuscore.config import get_settings
from campuscore.exceptions import ForbiddenError, MissingClaimError

logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    """Roles recognised by the records API."""

    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


STAFF_ROLES: frozenset[Role] = frozenset({Role.ADMIN, Role.TEACHER})
ADMIN_ONLY: frozenset[Role] = frozenset({Role.ADMIN})


# ---------------------------------------------------------------------------
# Principal
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Principal:
    """The authenticated actor making a request.

    ``role`` is kept as the raw claim string so that an unrecognised role can
    reach :func:`authorize` and be rejected there.

    Attributes:
        user_id: Identity-provider user id.
        role: Role claim (``admin``, ``teacher`` or ``student``).
        student_id: Human-readable student id; only set for student principals.
    """

    user_id: str
    role: str | None
    student_id: str | None = None

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> Principal:
        """Build a principal from decoded token claims.

        Accepts ``userId``/``sub`` for the user id and ``studentId``/``student_id``
        for the student claim.  A ``student_id`` on a non-student principal is
        dropped.
        """
        user_id = claims.get("userId") or claims.get("user_id") or claims.get("sub") or ""
        role = claims.get("role")
        student_id = claims.get("studentId") or claims.get("student_id")
        if role != Role.STUDENT.value:
            student_id = None
        return cls(user_id=str(user_id), role=role, student_id=student_id)

    @property
    def role_enum(self) -> Role | None:
        try:
            return Role(self.role)
        except ValueError:
            return None


def authorize(principal: Principal | None, allowed: Collection[Role]) -> Role:
    """Check that *principal* holds one of the *allowed* roles.

    Returns:
        The principal's :class:`Role`.

    Raises:
        ForbiddenError: If there is no principal, no role, an unknown role, or
            a role outside *allowed*.
    """
    if principal is None or not principal.role:
        raise ForbiddenError("Access denied. No role present on the principal.")
    role = principal.role_enum
    if role is None:
        logger.warning("Rejected unknown role %r for user %s", principal.role, principal.user_id)
        raise ForbiddenError(
            "Access denied. Unrecognised role.", details={"role": principal.role}
        )
    if role not in allowed:
        required = sorted(r.value for r in allowed)
        raise ForbiddenError(
            f"Access denied. Required role: {' or '.join(required)}.",
            details={"required_roles": required, "role": role.value},
        )
    return role


# ---------------------------------------------------------------------------
# Record scope
# ---------------------------------------------------------------------------


class ScopeKind(str, enum.Enum):
    SELF = "self"
    ADMINISTRATIVE = "administrative"


@dataclass(frozen=True)
class StudentScope:
    """Which student record a request resolves to.

    Attributes:
        kind: ``self`` for student principals, ``administrative`` otherwise.
        student_pk: Primary key to look up (administrative scope only).
        student_code: Human-readable ``student_id`` to look up (self scope only).
    """

    kind: ScopeKind
    student_pk: int | None = None
    student_code: str | None = None

    @property
    def is_self(self) -> bool:
        return self.kind is ScopeKind.SELF


def resolve_student_scope(
    principal: Principal | None,
    requested_pk: int | None = None,
    allowed: Collection[Role] = frozenset(Role),
) -> StudentScope:
    """Resolve the record a principal may reach for a single-student request.

    Staff principals are scoped to *requested_pk*.  Student principals are
    always scoped to their own ``student_id`` claim and *requested_pk* is
    ignored, whatever its value.

    Raises:
        ForbiddenError: Missing, unknown or disallowed role.
        MissingClaimError: A student principal without a ``student_id`` claim.
    """
    role = authorize(principal, allowed)
    if role is Role.STUDENT:
        if not principal.student_id:
            raise MissingClaimError("student_id")
        return StudentScope(kind=ScopeKind.SELF, student_code=principal.student_id)
    return StudentScope(kind=ScopeKind.ADMINISTRATIVE, student_pk=requested_pk)


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------


def _positive_int(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return None
    return value if value >= 1 else None


@dataclass(frozen=True)
class PageRequest:
    """A validated page/limit pair.  Never built from raw input directly."""

    page: int
    limit: int

    @classmethod
    def parse(cls, page: Any = None, limit: Any = None) -> PageRequest:
        """Parse raw pagination input; bad or missing values fall back to defaults.

        This never raises.  Limits above ``settings.max_page_limit`` are capped.
        """
        settings = get_settings()
        parsed_page = _positive_int(page) or settings.default_page
        parsed_limit = _positive_int(limit) or settings.default_page_limit
        return cls(page=parsed_page, limit=min(parsed_limit, settings.max_page_limit))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True)
class PageInfo:
    """Pagination metadata returned alongside list results."""

    current_page: int
    limit: int
    total_pages: int
    total_count: int
    has_next_page: bool
    has_previous_page: bool

    @classmethod
    def build(cls, total_count: int, request: PageRequest) -> PageInfo:
        total_pages = math.ceil(total_count / request.limit)
        return cls(
            current_page=request.page,
            limit=request.limit,
            total_pages=total_pages,
            total_count=total_count,
            has_next_page=request.page < total_pages,
            has_previous_page=request.page > 1,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_page": self.current_page,
            "limit": self.limit,
            "total_pages": self.total_pages,
            "total_count": self.total_count,
            "has_next_page": self.has_next_page,
            "has_previous_page": self.has_previous_page,
        }


def subject_filter(raw: str | None) -> str | None:
    """Normalise the optional subject filter; blank input means no filter."""
    if raw is None or not str(raw).strip():
        return None
    return str(raw).strip()
