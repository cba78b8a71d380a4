# app/schemas/course_enrollment.py
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

EnrollmentTypeLiteral = Literal["self", "admin", "gift", "comp"]
EnrollmentStatusLiteral = Literal["active", "pending", "expired", "revoked"]

# ==================== Enrollment Schemas ====================


class EnrollmentCreate(BaseModel):
    """Schema for enrolling a user in a course"""

    user_id: str = Field(..., description="Canonical user ID")
    course_id: str = Field(..., description="Course ID to enroll in")
    enrollment_type: EnrollmentTypeLiteral = Field(default="admin")
    status: EnrollmentStatusLiteral = Field(default="active")
    notes: Optional[str] = Field(None, description="Free-form enrollment notes")


class EnrollmentResult(BaseModel):
    """Structured outcome of an enrollment attempt"""

    success: bool
    enrollment_id: Optional[str] = None
    is_new: bool = False
    error: Optional[str] = None
    error_type: Optional[str] = None  # conflict, not_found, validation_error, database_error


class EnrollmentUpdate(BaseModel):
    progress: Optional[int] = Field(None, description="Progress percentage 0-100")
    completed: Optional[bool] = None
    status: Optional[EnrollmentStatusLiteral] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def not_empty(self):
        if (
            self.progress is None
            and self.completed is None
            and self.status is None
            and self.notes is None
        ):
            raise ValueError("Nothing to update")
        return self


class EnrollmentResponse(BaseModel):
    id: str
    user_id: str
    course_id: str
    enrollment_type: str
    status: str
    enrollment_notes: Optional[str]
    created_by: Optional[str]
    progress: int
    completed: bool
    exam_score: Optional[Decimal]
    exam_passed: Optional[bool]
    enrolled_at: datetime
    last_accessed_at: Optional[datetime]
    completed_at: Optional[datetime]

    # Include course details
    course_title: Optional[str] = None
    course_sku: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class EnrollmentCheckResponse(BaseModel):
    is_enrolled: bool
    user_id: Optional[str] = None
    enrollment: Optional[EnrollmentResponse] = None
    message: Optional[str] = None


class EnrollmentListResponse(BaseModel):
    enrollments: List[EnrollmentResponse]
    total: int
    page: int
    size: int
    total_pages: int
