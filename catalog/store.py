"""
catalog/store.py -- SQLAlchemy-backed course ownership and enrollment store.

Uses SQLAlchemy Core (not ORM) so the dataclasses in catalog/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. CatalogStore is the repository; the
_row_to_* functions are the mappers.

CatalogStore satisfies auth.policy.ResourceOwnership (owner_of, is_enrolled)
without importing auth/ -- the protocol is structural.

Course references accept either the numeric id or the public uuid, because
clients see uuids while internal callers hold ids.

Usage:
    store = CatalogStore("sqlite:///coursegate.db")
    course_id = store.create_course(Course(title="Intro", instructor_id=7))
    store.enroll(user_id=9, course_id=course_id)
    store.is_enrolled(9, course_id)   # True
    store.close()
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy import Column, Integer, MetaData, String, Table, UniqueConstraint, create_engine, event
from sqlalchemy.engine import Engine

from catalog.models import Course, Enrollment

CourseRef = Union[int, str]

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_courses = Table(
    "courses",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("uuid", String(36), nullable=False, unique=True),
    Column("title", String(255), nullable=False),
    Column("instructor_id", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
)

_enrollments = Table(
    "enrollments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False),
    Column("course_id", Integer, nullable=False),
    Column("status", String(20), nullable=False, server_default="active"),
    Column("enrolled_at", String(32), nullable=False),
    UniqueConstraint("user_id", "course_id", name="uq_user_course"),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _course_clause(ref: CourseRef):
    """WHERE clause matching a course by numeric id or by uuid."""
    if isinstance(ref, int) or (isinstance(ref, str) and ref.isdigit()):
        return _courses.c.id == int(ref)
    return _courses.c.uuid == ref


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CatalogStore:
    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Courses
    # ------------------------------------------------------------------

    def create_course(self, course: Course) -> int:
        """Insert a course and return its ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _courses.insert().values(
                    uuid=course.uuid or str(uuid.uuid4()),
                    title=course.title,
                    instructor_id=course.instructor_id,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_course(self, ref: CourseRef) -> Optional[Course]:
        with self.engine.connect() as conn:
            row = conn.execute(_courses.select().where(_course_clause(ref))).fetchone()
        return _row_to_course(row) if row is not None else None

    def delete_course(self, ref: CourseRef) -> bool:
        """Delete a course and its enrollments. Returns False if not found."""
        course = self.get_course(ref)
        if course is None:
            return False
        with self.engine.connect() as conn:
            conn.execute(_enrollments.delete().where(_enrollments.c.course_id == course.id))
            conn.execute(_courses.delete().where(_courses.c.id == course.id))
            conn.commit()
        return True

    def owner_of(self, resource_id: CourseRef) -> Optional[int]:
        """Return the instructor id of a course, or None if it does not exist."""
        course = self.get_course(resource_id)
        return course.instructor_id if course is not None else None

    # ------------------------------------------------------------------
    # Enrollments
    # ------------------------------------------------------------------

    def is_enrolled(self, user_id: int, resource_id: CourseRef) -> bool:
        """True only for an *active* enrollment; cancelled ones do not count."""
        course = self.get_course(resource_id)
        if course is None:
            return False
        with self.engine.connect() as conn:
            row = conn.execute(
                _enrollments.select().where(
                    (_enrollments.c.user_id == user_id)
                    & (_enrollments.c.course_id == course.id)
                    & (_enrollments.c.status == "active")
                )
            ).fetchone()
        return row is not None

    def enroll(self, user_id: int, course_id: int) -> Enrollment:
        """Create an active enrollment, or re-activate a cancelled one."""
        with self.engine.connect() as conn:
            existing = conn.execute(
                _enrollments.select().where(
                    (_enrollments.c.user_id == user_id) & (_enrollments.c.course_id == course_id)
                )
            ).fetchone()
            if existing is None:
                conn.execute(
                    _enrollments.insert().values(
                        user_id=user_id,
                        course_id=course_id,
                        status="active",
                        enrolled_at=_now_iso(),
                    )
                )
            elif existing.status != "active":
                conn.execute(
                    _enrollments.update()
                    .where(_enrollments.c.id == existing.id)
                    .values(status="active", enrolled_at=_now_iso())
                )
            conn.commit()
            row = conn.execute(
                _enrollments.select().where(
                    (_enrollments.c.user_id == user_id) & (_enrollments.c.course_id == course_id)
                )
            ).fetchone()
        return _row_to_enrollment(row)

    def cancel_enrollment(self, user_id: int, course_id: int) -> bool:
        """Mark an enrollment cancelled. Returns False if there was no active one."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _enrollments.update()
                .where(
                    (_enrollments.c.user_id == user_id)
                    & (_enrollments.c.course_id == course_id)
                    & (_enrollments.c.status == "active")
                )
                .values(status="cancelled")
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_course(row) -> Course:
    return Course(
        id=row.id,
        uuid=row.uuid,
        title=row.title,
        instructor_id=row.instructor_id,
        created_at=row.created_at,
    )


def _row_to_enrollment(row) -> Enrollment:
    return Enrollment(
        id=row.id,
        user_id=row.user_id,
        course_id=row.course_id,
        status=row.status,
        enrolled_at=row.enrolled_at,
    )
