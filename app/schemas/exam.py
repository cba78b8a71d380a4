# app/schemas/exam.py
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.schemas.certificate import CertificateResponse

# ==================== Exam Schemas ====================


class ExamQuestionCreate(BaseModel):
    question_text: str = Field(..., min_length=1)
    options: Dict[str, str] = Field(..., description='e.g. {"a": "...", "b": "..."}')
    correct_options: List[str] = Field(..., min_length=1)
    explanation: Optional[str] = None

    @model_validator(mode="after")
    def correct_options_exist(self):
        if len(self.options) < 2:
            raise ValueError("A question needs at least two options")
        unknown = set(self.correct_options) - set(self.options)
        if unknown:
            raise ValueError(f"Correct options not among options: {sorted(unknown)}")
        return self


class ExamCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    passing_score: Decimal = Field(default=Decimal("70"), ge=0, le=100)
    attempt_limit: Optional[int] = Field(
        None, ge=1, description="Maximum attempts per learner (null = unlimited)"
    )
    questions: List[ExamQuestionCreate] = []


class ExamQuestionResponse(BaseModel):
    """Question as shown to learners (no answers)"""

    id: str
    position: int
    question_text: str
    options: Dict[str, str]

    model_config = ConfigDict(from_attributes=True)


class ExamQuestionAdminResponse(ExamQuestionResponse):
    correct_options: List[str]
    explanation: Optional[str]


class ExamResponse(BaseModel):
    id: str
    course_id: str
    title: str
    description: Optional[str]
    passing_score: Decimal
    attempt_limit: Optional[int]
    num_questions: int = 0
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ExamDetailResponse(ExamResponse):
    questions: List[ExamQuestionResponse] = []


class ExamAdminDetailResponse(ExamResponse):
    questions: List[ExamQuestionAdminResponse] = []


# ==================== Attempt Schemas ====================


class ExamAttemptResponse(BaseModel):
    id: str
    user_id: str
    exam_id: str
    attempt_number: int
    score: Optional[Decimal]
    passed: Optional[bool]
    completed: bool
    status: str
    started_at: datetime
    completed_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class ExamAnswerSubmit(BaseModel):
    question_id: str
    selected_options: List[str] = Field(..., min_length=1)


class ExamAnswerResponse(BaseModel):
    id: str
    attempt_id: str
    question_id: str
    selected_options: List[str]
    is_correct: bool

    model_config = ConfigDict(from_attributes=True)


class ExamAttemptDetailResponse(BaseModel):
    attempt: ExamAttemptResponse
    answers: List[ExamAnswerResponse]


class ExamAttemptComplete(BaseModel):
    """Explicit result, or leave empty to score from stored answers"""

    score: Optional[Decimal] = Field(None, ge=0, le=100)
    passed: Optional[bool] = None

    @model_validator(mode="after")
    def passed_needs_score(self):
        if self.passed is not None and self.score is None:
            raise ValueError("passed can only be given together with score")
        return self


class ExamAttemptCompleteResponse(BaseModel):
    attempt: ExamAttemptResponse
    certificates: List[CertificateResponse] = []
