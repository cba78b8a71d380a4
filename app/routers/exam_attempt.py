# app/routers/exam_attempt.py

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.dependencies import get_current_user
from app.models.user import User
from app.schemas.exam import (
    ExamAnswerResponse,
    ExamAnswerSubmit,
    ExamAttemptComplete,
    ExamAttemptCompleteResponse,
    ExamAttemptDetailResponse,
)
from app.services.exam_attempt import ExamAttemptService

router = APIRouter(
    prefix="/attempts",
    tags=["Exam Attempts"],
    responses={404: {"description": "Not found"}},
)


@router.get("/{attempt_id}", response_model=ExamAttemptDetailResponse)
def get_attempt(
    attempt_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    service = ExamAttemptService(db)
    attempt, answers = service.get_attempt_with_answers(attempt_id, current_user)
    return {"attempt": attempt, "answers": answers}


@router.post("/{attempt_id}/answers", response_model=ExamAnswerResponse)
def submit_answer(
    attempt_id: str,
    answer_in: ExamAnswerSubmit,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Record the answer to one question. Submitting again for the same
    question replaces the previous answer.
    """
    service = ExamAttemptService(db)
    return service.submit_answer(
        attempt_id, answer_in.question_id, answer_in.selected_options, current_user
    )


@router.post("/{attempt_id}/complete", response_model=ExamAttemptCompleteResponse)
def complete_attempt(
    attempt_id: str,
    result: Optional[ExamAttemptComplete] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Close an attempt. Without an explicit score, the score is computed
    from the stored answers. A pass issues certificates.
    """
    result = result or ExamAttemptComplete()
    service = ExamAttemptService(db)
    attempt, certificates = service.complete_attempt(
        attempt_id, current_user, score=result.score, passed=result.passed
    )
    return {"attempt": attempt, "certificates": certificates}
