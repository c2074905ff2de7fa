"""SQLAlchemy ORM models for the CampusCore records backend."""

from campuscore.models.course import Course
from campuscore.models.enrollment import ACTIVE_ENROLLMENT_STATUSES, Enrollment, EnrollmentStatus
from campuscore.models.student import Student

__all__ = [
    "Student",
    "Course",
    "Enrollment",
    "EnrollmentStatus",
    "ACTIVE_ENROLLMENT_STATUSES",
]
