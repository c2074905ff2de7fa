"""SQLAlchemy ORM model for the students table."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, List

from sqlalchemy import JSON, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from campuscore.database import Base

if TYPE_CHECKING:
    from campuscore.models.enrollment import Enrollment


class Student(Base):
    """A student record with its embedded, ordered grade array.

    Grades are not addressable rows: the whole ``grades`` array is rewritten
    on every grade mutation.  ``version`` is SQLAlchemy's version counter, so
    a flush against a row someone else updated raises ``StaleDataError``.

    Attributes:
        id: Auto-incrementing primary key (the id used in request paths).
        student_id: Unique human-readable id, e.g. ``STU-2025-0001``.
        name: Full name.
        email: Unique, lower-cased e-mail address.
        age: Age in years (3–25).
        grade_level: Free-text grouping such as ``"10th"``.
        grades: Ordered list of ``{"subject": str, "score": float}`` dicts.
        version: Optimistic-concurrency counter.
        created_at: Timestamp of record creation.
        updated_at: Timestamp of the last write.
        enrollments: Relationship to the student's course enrollments.
    """

    __tablename__ = "students"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    grade_level: Mapped[str] = mapped_column(String(50), nullable=False)
    grades: Mapped[List[dict[str, Any]]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=list
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False, server_default=func.now(), onupdate=func.now()
    )

    enrollments: Mapped[List[Enrollment]] = relationship(
        "Enrollment", back_populates="student", passive_deletes=True
    )

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}

    def __repr__(self) -> str:
        return f"<Student(id={self.id}, student_id='{self.student_id}')>"
