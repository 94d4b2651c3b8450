"""
api/routes/v1/courses.py -- Course endpoints that exercise the authorization gates.

Routes:
  POST   /api/v1/courses                   -- create (instructor or above)
  GET    /api/v1/courses/{course_id}       -- public; personalized when logged in
  DELETE /api/v1/courses/{course_id}       -- owning instructor or admin
  POST   /api/v1/courses/{course_id}/enroll  -- any authenticated user
  GET    /api/v1/courses/{course_id}/content -- enrolled, owning instructor, or admin

course_id accepts the numeric id or the public uuid.

Course content itself is managed elsewhere; these routes carry just enough
data to show who may see what.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.models import CourseContentResponse, CourseCreate, CourseResponse, EnrollmentResponse, ErrorDetail
from auth.dependencies import (
    get_current_identity,
    require_course_owner_or_admin,
    require_enrolled_or_instructor,
    require_min_role,
    try_get_current_identity,
)
from auth.errors import ResourceNotFoundError
from auth.models import Identity, Role, ViewMode
from catalog.models import Course
from catalog.store import CatalogStore

router = APIRouter()


def _get_course(catalog: CatalogStore, course_id: str) -> Course:
    course = catalog.get_course(course_id)
    if course is None:
        raise ResourceNotFoundError("Course not found.")
    return course


def _to_response(course: Course, is_enrolled: Optional[bool] = None) -> CourseResponse:
    return CourseResponse(
        id=course.id,
        uuid=course.uuid,
        title=course.title,
        instructor_id=course.instructor_id,
        created_at=course.created_at,
        is_enrolled=is_enrolled,
    )


@router.post("/courses", response_model=CourseResponse, status_code=201)
def create_course(
    request: Request,
    body: CourseCreate,
    identity: Identity = Depends(require_min_role(Role.instructor)),
) -> CourseResponse:
    catalog: CatalogStore = request.app.state.catalog
    course_id = catalog.create_course(Course(title=body.title, instructor_id=identity.id))
    return _to_response(_get_course(catalog, str(course_id)))


@router.get("/courses/{course_id}", response_model=CourseResponse)
def get_course(
    request: Request,
    course_id: str,
    identity: Optional[Identity] = Depends(try_get_current_identity),
) -> CourseResponse:
    """Public course view. Logged-in callers also get is_enrolled."""
    catalog: CatalogStore = request.app.state.catalog
    course = _get_course(catalog, course_id)
    is_enrolled = catalog.is_enrolled(identity.id, course.id) if identity is not None else None
    return _to_response(course, is_enrolled)


@router.delete("/courses/{course_id}", status_code=204)
def delete_course(
    request: Request,
    course_id: str,
    identity: Identity = Depends(require_course_owner_or_admin),
) -> Response:
    catalog: CatalogStore = request.app.state.catalog
    if not catalog.delete_course(course_id):
        raise ResourceNotFoundError("Course not found.")
    return Response(status_code=204)


@router.post("/courses/{course_id}/enroll", response_model=EnrollmentResponse, status_code=201)
def enroll(
    request: Request,
    course_id: str,
    identity: Identity = Depends(get_current_identity),
) -> EnrollmentResponse:
    """Enroll the caller. Instructors cannot enroll in their own course."""
    catalog: CatalogStore = request.app.state.catalog
    course = _get_course(catalog, course_id)
    if course.instructor_id == identity.id:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(code="own_course", message="You cannot enroll in your own course.").model_dump(),
        )
    enrollment = catalog.enroll(identity.id, course.id)
    return EnrollmentResponse(
        course_id=enrollment.course_id,
        user_id=enrollment.user_id,
        status=enrollment.status,
        enrolled_at=enrollment.enrolled_at,
    )


@router.get("/courses/{course_id}/content", response_model=CourseContentResponse)
def course_content(
    request: Request,
    course_id: str,
    view_mode: ViewMode = Depends(require_enrolled_or_instructor),
) -> CourseContentResponse:
    catalog: CatalogStore = request.app.state.catalog
    course = _get_course(catalog, course_id)
    return CourseContentResponse(
        course_id=course.id,
        title=course.title,
        view_mode=view_mode.value,
        can_edit=view_mode in (ViewMode.admin, ViewMode.instructor),
    )
