"""
catalog/models.py -- Domain dataclasses for courses and enrollments.

Only the fields the authorization checks need: who teaches a course and who
is enrolled in it. Course content, pricing, lessons and categories belong to
other services.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Course:
    """A course owned by one instructor.

    id is None before the record is written to the database.
    """

    title: str
    instructor_id: int
    id: Optional[int] = None
    uuid: str = ""
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class Enrollment:
    user_id: int
    course_id: int
    status: str = "active"  # "active" | "cancelled"
    id: Optional[int] = None
    enrolled_at: str = ""
