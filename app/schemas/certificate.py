# app/schemas/certificate.py
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.course import CreditTypeLiteral


class CertificateGenerate(BaseModel):
    user_id: str
    course_id: str
    enrollment_id: str
    exam_score: Decimal = Field(..., ge=0, le=100)
    passing_score: Optional[Decimal] = Field(None, ge=0, le=100)


class CertificateEditRequest(BaseModel):
    field_name: Literal[
        "recipient_name",
        "course_title",
        "exam_score",
        "credits_earned",
        "completion_date",
    ]
    new_value: str
    old_value: Optional[str] = Field(
        None, description="Value the editor saw; rejected if it is stale"
    )
    edit_reason: Optional[str] = None


class CertificateRevokeRequest(BaseModel):
    reason: Optional[str] = Field(None, description="Why the certificate is revoked")


class CertificateReinstateRequest(CertificateRevokeRequest):
    pass


class CertificateEditResponse(BaseModel):
    id: str
    certificate_id: str
    edited_by: str
    field_name: str
    old_value: Optional[str]
    new_value: Optional[str]
    edit_reason: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CertificateTemplateBase(BaseModel):
    name: str
    credit_type: CreditTypeLiteral
    title: str
    body_text: Optional[str] = None
    issuer_name: Optional[str] = None


class CertificateTemplateResponse(CertificateTemplateBase):
    id: str

    model_config = ConfigDict(from_attributes=True)


class CertificateResponse(BaseModel):
    id: str
    certificate_number: str
    user_id: str
    course_id: str
    enrollment_id: Optional[str]
    template_id: Optional[str]
    credit_type: str
    title: str
    recipient_name: str
    course_title: str
    completion_date: datetime
    exam_score: Optional[Decimal]
    credits_earned: Decimal
    custom_data: Optional[Dict[str, Any]] = None
    is_revoked: bool
    revoked_at: Optional[datetime]
    revoked_by: Optional[str]
    revoked_reason: Optional[str]

    # Joined context
    course_sku: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CertificateDetailResponse(CertificateResponse):
    template: Optional[CertificateTemplateResponse] = None
    edits: List[CertificateEditResponse] = []


class CertificateListResponse(BaseModel):
    certificates: List[CertificateResponse]
    total: int


class CertificateGenerateResponse(BaseModel):
    success: bool = True
    certificates: List[CertificateResponse]
    message: str
