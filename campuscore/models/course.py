"""SQLAlchemy ORM model for the courses table (read-only for this service)."""

from __future__ import annotations

from typing import TYPE_CHECKING, List

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from campuscore.database import Base

if TYPE_CHECKING:
    from campuscore.models.enrollment import Enrollment


class Course(Base):
    """A course students can enroll in.

    Attributes:
        id: Auto-incrementing primary key.
        name: Human-readable course name.
        code: Short unique course code (e.g. ``'MATH-101'``).
        enrollments: Relationship to enrollments in this course.
    """

    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)

    enrollments: Mapped[List[Enrollment]] = relationship(
        "Enrollment", back_populates="course"
    )

    def __repr__(self) -> str:
        return f"<Course(id={self.id}, code='{self.code}')>"
