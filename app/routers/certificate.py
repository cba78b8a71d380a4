# app/routers/certificate.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.decorator import NotAuthorized
from app.core.dependencies import get_current_admin, get_current_user
from app.models.user import User
from app.schemas.certificate import (
    CertificateDetailResponse,
    CertificateEditRequest,
    CertificateGenerate,
    CertificateGenerateResponse,
    CertificateListResponse,
    CertificateReinstateRequest,
    CertificateRevokeRequest,
    CertificateTemplateBase,
    CertificateTemplateResponse,
)
from app.schemas.course import CreditTypeLiteral
from app.services.certificate import CertificateService

router = APIRouter(
    prefix="/certificates",
    tags=["Certificates"],
    responses={404: {"description": "Not found"}},
)


@router.post("/generate", response_model=CertificateGenerateResponse, status_code=201)
def generate_certificates(
    request: CertificateGenerate,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    """
    Issue one certificate per credit type of the course, if the score passes.
    Credit types the user already holds are skipped.
    """
    service = CertificateService(db)
    certificates = service.auto_generate_certificates(
        user_id=request.user_id,
        course_id=request.course_id,
        enrollment_id=request.enrollment_id,
        exam_score=request.exam_score,
        passing_score=request.passing_score,
    )
    if certificates:
        message = f"Generated {len(certificates)} certificate(s)"
    else:
        message = "No certificates generated"
    return {"success": True, "certificates": certificates, "message": message}


@router.get("", response_model=CertificateListResponse)
def list_certificates(
    is_revoked: Optional[bool] = Query(None),
    credit_type: Optional[CreditTypeLiteral] = Query(None),
    course_id: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    service = CertificateService(db)
    certificates = service.list_all(
        is_revoked=is_revoked,
        credit_type=credit_type,
        course_id=course_id,
        user_id=user_id,
    )
    return {"certificates": certificates, "total": len(certificates)}


@router.get("/user/{user_id}", response_model=CertificateListResponse)
def list_user_certificates(
    user_id: str,
    include_revoked: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Certificates held by a user. Learners can only list their own.
    """
    if user_id != current_user.id and not current_user.is_admin:
        raise NotAuthorized("Not allowed to view another user's certificates")

    service = CertificateService(db)
    certificates = service.list_by_user(user_id, include_revoked=include_revoked)
    return {"certificates": certificates, "total": len(certificates)}


# ==================== Templates ====================


@router.get("/templates", response_model=List[CertificateTemplateResponse])
def list_templates(
    credit_type: Optional[CreditTypeLiteral] = Query(None),
    db: Session = Depends(get_db),
):
    return CertificateService(db).list_templates(credit_type)


@router.put("/templates", response_model=CertificateTemplateResponse)
def upsert_template(
    template_in: CertificateTemplateBase,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    """Create or replace the template for a credit type."""
    return CertificateService(db).upsert_template(template_in)


# ==================== Single certificate ====================


@router.get("/{certificate_id}", response_model=CertificateDetailResponse)
def get_certificate(
    certificate_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Get a certificate with its template and edit history.
    """
    certificate = CertificateService(db).get_certificate(certificate_id)
    if certificate.user_id != current_user.id and not current_user.is_admin:
        raise NotAuthorized("Not allowed to view this certificate")
    return certificate


@router.put("/{certificate_id}/edit", response_model=CertificateDetailResponse)
def edit_certificate(
    certificate_id: str,
    edit: CertificateEditRequest,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    """
    Change one field of a certificate. The change is recorded in the
    certificate's edit history.
    """
    service = CertificateService(db)
    return service.edit_certificate(
        certificate_id,
        edited_by=current_admin.id,
        field_name=edit.field_name,
        new_value=edit.new_value,
        old_value=edit.old_value,
        edit_reason=edit.edit_reason,
    )


@router.put("/{certificate_id}/revoke", response_model=CertificateDetailResponse)
def revoke_certificate(
    certificate_id: str,
    request: CertificateRevokeRequest,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    service = CertificateService(db)
    return service.revoke_certificate(certificate_id, current_admin.id, request.reason)


@router.put("/{certificate_id}/reinstate", response_model=CertificateDetailResponse)
def reinstate_certificate(
    certificate_id: str,
    request: CertificateReinstateRequest,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    service = CertificateService(db)
    return service.reinstate_certificate(
        certificate_id, current_admin.id, request.reason
    )
