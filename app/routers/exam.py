# app/routers/exam.py
from typing import List, Union

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.dependencies import get_current_user
from app.models.user import User
from app.schemas.exam import (
    ExamAdminDetailResponse,
    ExamAttemptResponse,
    ExamDetailResponse,
)
from app.services.exam import ExamService
from app.services.exam_attempt import ExamAttemptService

router = APIRouter(
    prefix="/exams",
    tags=["Exams"],
    responses={404: {"description": "Not found"}},
)


@router.get(
    "/{exam_id}", response_model=Union[ExamAdminDetailResponse, ExamDetailResponse]
)
def get_exam(
    exam_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Get an exam with its questions.
    Correct answers are only included for admins.
    """
    exam = ExamService(db).get_exam(exam_id)
    if current_user.is_admin:
        return ExamAdminDetailResponse.model_validate(exam)
    return ExamDetailResponse.model_validate(exam)


@router.get("/{exam_id}/attempts", response_model=List[ExamAttemptResponse])
def list_my_attempts(
    exam_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    The acting user's attempts at this exam, most recent first.
    """
    service = ExamAttemptService(db)
    return service.list_attempts(current_user.id, exam_id)


@router.post("/{exam_id}/attempts", response_model=ExamAttemptResponse, status_code=201)
def start_attempt(
    exam_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Start a new attempt. Rejected with 403 once the exam's attempt limit
    is reached.
    """
    service = ExamAttemptService(db)
    return service.create_attempt(current_user.id, exam_id)
