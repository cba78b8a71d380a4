# app/schemas/course.py
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

CreditTypeLiteral = Literal["CPA", "CFP", "CDFA", "EA", "OTRP", "EA/OTRP", "ERPA"]


# ==================== Child entries ====================


class CourseFormatEntry(BaseModel):
    format: Literal["online", "hardcopy", "video"]
    price: Decimal = Field(..., ge=0)

    model_config = ConfigDict(from_attributes=True)


class CourseCreditEntry(BaseModel):
    credit_type: CreditTypeLiteral
    amount: Decimal = Field(..., gt=0)
    course_number: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CourseStateEntry(BaseModel):
    state_code: str = Field(..., min_length=2, max_length=2)

    model_config = ConfigDict(from_attributes=True)

    @field_validator("state_code")
    def upper_state(cls, v: str) -> str:
        return v.upper()


# ==================== Course ====================


class CourseCreate(BaseModel):
    sku: str = Field(..., max_length=50)
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    author: Optional[str] = None
    main_subject: Optional[str] = None
    table_of_contents_url: Optional[str] = None
    course_content_url: Optional[str] = None
    formats: List[CourseFormatEntry] = []
    credits: List[CourseCreditEntry] = []
    states: List[CourseStateEntry] = []

    @field_validator("sku")
    def sku_not_blank(cls, v: str) -> str:
        # Empty SKUs collide with each other in the unique index
        v = v.strip()
        if not v:
            raise ValueError("sku must not be empty")
        return v


class CourseResponse(BaseModel):
    id: str
    sku: str
    title: str
    description: Optional[str]
    author: Optional[str]
    main_subject: Optional[str]
    table_of_contents_url: Optional[str]
    course_content_url: Optional[str]
    formats: List[CourseFormatEntry] = []
    credits: List[CourseCreditEntry] = []
    states: List[CourseStateEntry] = []
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CourseListResponse(BaseModel):
    courses: List[CourseResponse]
    total: int
    page: int
    size: int
    total_pages: int
