# app/routers/course_enrollment.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.decorator import (
    Conflict,
    DBException,
    NotAuthorized,
    NotFound,
    ValidationFailed,
)
from app.core.dependencies import (
    get_current_admin,
    get_current_user,
    get_identity_provider,
)
from app.models.user import User
from app.schemas.course_enrollment import (
    EnrollmentCheckResponse,
    EnrollmentCreate,
    EnrollmentListResponse,
    EnrollmentResponse,
    EnrollmentResult,
    EnrollmentStatusLiteral,
    EnrollmentUpdate,
)
from app.schemas.user import ReconcileRequest, ReconcileResponse
from app.services.course_enrollment import CourseEnrollmentService
from app.services.identity import IdentityProvider

router = APIRouter(
    prefix="/enrollments",
    tags=["Enrollments"],
    responses={404: {"description": "Not found"}},
)


@router.post("", response_model=EnrollmentResult, status_code=201)
def enroll_user(
    enrollment_in: EnrollmentCreate,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    """
    Manually enroll a user in a course.
    A duplicate enrollment is answered with 409 and the existing id.
    """
    service = CourseEnrollmentService(db)
    result = service.create_enrollment(
        user_id=enrollment_in.user_id,
        course_id=enrollment_in.course_id,
        enrollment_type=enrollment_in.enrollment_type,
        status=enrollment_in.status,
        notes=enrollment_in.notes,
        admin_user_id=current_admin.id,
    )

    if result.success:
        return result
    if result.error_type == "conflict":
        raise Conflict(result.error, enrollment_id=result.enrollment_id, is_new=False)
    if result.error_type == "not_found":
        raise NotFound(result.error)
    if result.error_type == "validation_error":
        raise ValidationFailed(result.error)
    raise DBException(result.error, 500)


@router.get("", response_model=EnrollmentCheckResponse)
def check_enrollment(
    course_id: str = Query(..., description="Course to check"),
    user_id: Optional[str] = Query(None),
    email: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    provider: IdentityProvider = Depends(get_identity_provider),
    current_user: User = Depends(get_current_user),
):
    """
    Is the user (by id or email) enrolled in the course?
    Learners can only ask about themselves; admins about anyone.
    """
    if not current_user.is_admin:
        if user_id and user_id != current_user.id:
            raise NotAuthorized("Not allowed to check another user's enrollment")
        if email and email.strip().lower() != (current_user.email or "").lower():
            raise NotAuthorized("Not allowed to check another user's enrollment")
        user_id = current_user.id
        email = None
    elif not user_id and not email:
        user_id = current_user.id

    service = CourseEnrollmentService(db)
    return service.check_enrollment(
        course_id, user_id=user_id, email=email, provider=provider
    )


@router.get("/me", response_model=EnrollmentListResponse)
def get_my_enrollments(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Get all courses the current user is enrolled in, most recent first.
    """
    service = CourseEnrollmentService(db)
    enrollments, pagination = service.get_user_enrollments(
        current_user.id, page=page, size=size
    )
    return {"enrollments": enrollments, **pagination}


@router.get("/admin", response_model=EnrollmentListResponse)
def list_enrollments(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    course_id: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    status: Optional[EnrollmentStatusLiteral] = Query(None),
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    service = CourseEnrollmentService(db)
    enrollments, pagination = service.list_enrollments(
        page=page, size=size, course_id=course_id, status=status, user_id=user_id
    )
    return {"enrollments": enrollments, **pagination}


@router.post("/reconcile", response_model=ReconcileResponse)
def reconcile_enrollments(
    request: ReconcileRequest,
    db: Session = Depends(get_db),
    provider: IdentityProvider = Depends(get_identity_provider),
    current_admin: User = Depends(get_current_admin),
):
    """
    Move enrollments recorded under stale ids for an email onto the
    canonical user id.
    """
    service = CourseEnrollmentService(db)
    return service.reconcile_identity(request.email, provider)


@router.patch("/{enrollment_id}", response_model=EnrollmentResponse)
def update_enrollment(
    enrollment_id: str,
    update: EnrollmentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Update progress (owner or admin) or status and notes (admin only).
    """
    service = CourseEnrollmentService(db)
    return service.update_enrollment(enrollment_id, update, current_user)


@router.delete("/{enrollment_id}")
def delete_enrollment(
    enrollment_id: str,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    service = CourseEnrollmentService(db)
    service.delete_enrollment(enrollment_id)
    return {"success": True, "message": "Enrollment deleted successfully"}
