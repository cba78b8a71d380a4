# app/routers/course.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.dependencies import get_current_admin
from app.models.user import User
from app.schemas.course import CourseCreate, CourseListResponse, CourseResponse
from app.schemas.exam import ExamAdminDetailResponse, ExamCreate, ExamResponse
from app.services.course import CourseService
from app.services.exam import ExamService

router = APIRouter(
    prefix="/courses",
    tags=["Courses"],
    responses={404: {"description": "Not found"}},
)


# ==================== Course Endpoints ====================


@router.post("", response_model=CourseResponse, status_code=201)
def create_course(
    course_in: CourseCreate,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    """
    Create a course with its formats, credits and states.
    Only admins can create courses.
    """
    service = CourseService(db)
    return service.create_course(course_in)


@router.get("", response_model=CourseListResponse)
def list_courses(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, description="Search by title or SKU"),
    db: Session = Depends(get_db),
):
    """
    Get list of courses with pagination.
    Available to all users (authenticated or not).
    """
    service = CourseService(db)
    courses, pagination = service.get_courses(page=page, size=size, search=search)
    return {"courses": courses, **pagination}


@router.get("/{course_id}", response_model=CourseResponse)
def get_course(course_id: str, db: Session = Depends(get_db)):
    """
    Get a course by ID or SKU.
    """
    service = CourseService(db)
    return service.get_course(course_id)


# ==================== Exam Endpoints ====================


@router.post(
    "/{course_id}/exams", response_model=ExamAdminDetailResponse, status_code=201
)
def create_exam(
    course_id: str,
    exam_in: ExamCreate,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    """
    Create an exam (with its questions) for a course.
    """
    service = ExamService(db)
    return service.create_exam(course_id, exam_in)


@router.get("/{course_id}/exams", response_model=List[ExamResponse])
def list_course_exams(course_id: str, db: Session = Depends(get_db)):
    service = ExamService(db)
    return service.list_course_exams(course_id)
