"""SQLAlchemy ORM model for the enrollments table (read-only for this service)."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from campuscore.database import Base

if TYPE_CHECKING:
    from campuscore.models.course import Course
    from campuscore.models.student import Student


class EnrollmentStatus(str, enum.Enum):
    """Closed set of enrollment states."""

    ACTIVE = "active"
    ENROLLED = "enrolled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DROPPED = "dropped"
    WITHDRAWN = "withdrawn"
    SUSPENDED = "suspended"
    TRANSFERRED = "transferred"


# Statuses that signal ongoing coursework and block student deletion.
ACTIVE_ENROLLMENT_STATUSES: frozenset[str] = frozenset(
    {
        EnrollmentStatus.ACTIVE.value,
        EnrollmentStatus.ENROLLED.value,
        EnrollmentStatus.IN_PROGRESS.value,
    }
)


class Enrollment(Base):
    """A student's enrollment in a course.

    Attributes:
        id: Auto-incrementing primary key.
        student_id: Foreign key to students table.
        course_id: Foreign key to courses table.
        status: One of :class:`EnrollmentStatus` values.
        created_at: Timestamp of enrollment.
        student: Relationship to the enrolled student.
        course: Relationship to the course.
    """

    __tablename__ = "enrollments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True
    )
    course_id: Mapped[int] = mapped_column(
        ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EnrollmentStatus.ENROLLED.value, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        nullable=False, server_default=func.now()
    )

    student: Mapped[Student] = relationship("Student", back_populates="enrollments")
    course: Mapped[Course] = relationship("Course", back_populates="enrollments")

    @property
    def is_active(self) -> bool:
        """Whether this enrollment blocks deletion of its student."""
        return self.status in ACTIVE_ENROLLMENT_STATUSES

    def __repr__(self) -> str:
        return (
            f"<Enrollment(id={self.id}, student_id={self.student_id}, "
            f"status='{self.status}')>"
        )
