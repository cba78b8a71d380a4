# app/services/certificate.py
import logging
import secrets
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Set

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.core.config import settings
from app.core.decorator import Conflict, NotFound, ValidationFailed, db_exception
from app.models.certificate import (
    EDITABLE_FIELDS,
    Certificate,
    CertificateEdit,
    CertificateTemplate,
)
from app.models.course import CREDIT_TYPES, Course
from app.models.course_enrollment import Enrollment
from app.models.user import User
from app.schemas.certificate import CertificateTemplateBase

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Certificate of Completion"


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _stringify(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return str(value)


class CertificateService:
    def __init__(self, db: Session):
        self.db = db

    # ==================== Issuance ====================

    def _generate_certificate_number(self, taken: Set[str]) -> str:
        """CERT-YYYY-XXXXXXXX, unique against the table and the current batch."""
        year = datetime.now(timezone.utc).year
        for _ in range(10):
            number = (
                f"{settings.certificate_number_prefix}-{year}-"
                f"{secrets.token_hex(4).upper()}"
            )
            if number in taken:
                continue
            exists = (
                self.db.query(Certificate.id)
                .filter(Certificate.certificate_number == number)
                .first()
            )
            if not exists:
                taken.add(number)
                return number
        raise Conflict("Could not allocate a unique certificate number")

    def auto_generate_certificates(
        self,
        user_id: str,
        course_id: str,
        enrollment_id: str,
        exam_score: Decimal,
        passing_score: Optional[Decimal] = None,
        commit: bool = True,
    ) -> List[Certificate]:
        """
        Issue one certificate per credit type configured on the course.
        Returns an empty list when the score is below the passing score.
        Credit types the learner already holds for this course are skipped.
        """
        if passing_score is None:
            passing_score = Decimal(str(settings.default_passing_score))
        exam_score = Decimal(exam_score)

        if exam_score < Decimal(passing_score):
            logger.info(
                f"Exam not passed ({exam_score} < {passing_score}), no certificates for user {user_id}"
            )
            return []

        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFound("User not found")

        course = (
            self.db.query(Course)
            .options(selectinload(Course.credits))
            .filter(Course.id == course_id)
            .first()
        )
        if not course:
            raise NotFound("Course not found")

        enrollment = (
            self.db.query(Enrollment).filter(Enrollment.id == enrollment_id).first()
        )
        if not enrollment:
            raise NotFound("Enrollment not found")
        if enrollment.user_id != user_id or enrollment.course_id != course_id:
            raise ValidationFailed("Enrollment does not belong to this user and course")

        held = {
            row.credit_type
            for row in self.db.query(Certificate.credit_type).filter(
                and_(
                    Certificate.user_id == user_id,
                    Certificate.course_id == course_id,
                )
            )
        }
        templates = {
            t.credit_type: t for t in self.db.query(CertificateTemplate).all()
        }

        now = datetime.now(timezone.utc)
        taken: Set[str] = set()
        certificates: List[Certificate] = []

        for credit in course.credits:
            if credit.credit_type in held:
                logger.info(
                    f"User {user_id} already holds a {credit.credit_type} certificate for {course.sku}, skipping"
                )
                continue

            template = templates.get(credit.credit_type)
            certificate = Certificate(
                certificate_number=self._generate_certificate_number(taken),
                user_id=user_id,
                course_id=course_id,
                enrollment_id=enrollment_id,
                template_id=template.id if template else None,
                credit_type=credit.credit_type,
                title=template.title if template else DEFAULT_TITLE,
                recipient_name=user.name or user.email or user.id,
                course_title=course.title,
                completion_date=now,
                exam_score=exam_score,
                credits_earned=credit.amount,
                custom_data={
                    "course_number": credit.course_number,
                    "course_sku": course.sku,
                    "enrollment_type": enrollment.enrollment_type,
                },
                is_revoked=False,
            )
            self.db.add(certificate)
            certificates.append(certificate)

        try:
            self.db.flush()
            if commit:
                self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Certificate issuance conflict for user {user_id}: {e.orig}")
            raise Conflict("Certificate already exists for this user, course and credit type")

        for certificate in certificates:
            self.db.refresh(certificate)

        logger.info(
            f"Generated {len(certificates)} certificate(s) for user {user_id} in course {course.sku}"
        )
        return certificates

    # ==================== Queries ====================

    def _query(self):
        return self.db.query(Certificate).options(
            selectinload(Certificate.course),
            selectinload(Certificate.template),
        )

    def get_certificate(self, certificate_id: str) -> Certificate:
        certificate = (
            self._query()
            .options(selectinload(Certificate.edits))
            .filter(Certificate.id == certificate_id)
            .first()
        )
        if not certificate:
            raise NotFound("Certificate not found")
        return certificate

    def list_by_user(
        self, user_id: str, include_revoked: bool = False
    ) -> List[Certificate]:
        query = self._query().filter(Certificate.user_id == user_id)
        if not include_revoked:
            query = query.filter(Certificate.is_revoked.is_(False))
        return query.order_by(Certificate.completion_date.desc(), Certificate.id).all()

    def list_all(
        self,
        is_revoked: Optional[bool] = None,
        credit_type: Optional[str] = None,
        course_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> List[Certificate]:
        query = self._query()
        if is_revoked is not None:
            query = query.filter(Certificate.is_revoked.is_(is_revoked))
        if credit_type:
            query = query.filter(Certificate.credit_type == credit_type)
        if course_id:
            query = query.filter(Certificate.course_id == course_id)
        if user_id:
            query = query.filter(Certificate.user_id == user_id)
        return query.order_by(Certificate.completion_date.desc(), Certificate.id).all()

    # ==================== Edits & revocation ====================

    def _parse_field_value(self, field_name: str, raw: str) -> Any:
        if field_name in ("recipient_name", "course_title"):
            value = (raw or "").strip()
            if not value:
                raise ValidationFailed(f"{field_name} must not be empty")
            return value

        if field_name in ("exam_score", "credits_earned"):
            try:
                value = Decimal(str(raw).strip())
            except (InvalidOperation, ValueError):
                raise ValidationFailed(f"{field_name} must be a number")
            if value < 0 or (field_name == "exam_score" and value > 100):
                raise ValidationFailed(f"{field_name} is out of range")
            return value

        if field_name == "completion_date":
            try:
                value = datetime.fromisoformat(str(raw).strip())
            except ValueError:
                raise ValidationFailed("completion_date must be an ISO date")
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return value

        raise ValidationFailed(f"Field '{field_name}' cannot be edited")

    def _same_value(self, field_name: str, supplied: str, current: Any) -> bool:
        parsed = self._parse_field_value(field_name, supplied)
        if isinstance(parsed, datetime) and isinstance(current, datetime):
            return _naive_utc(parsed) == _naive_utc(current)
        if isinstance(parsed, Decimal) and current is not None:
            return parsed == Decimal(current)
        return parsed == current

    def _audit(
        self,
        certificate: Certificate,
        edited_by: str,
        field_name: str,
        old_value: Optional[str],
        new_value: Optional[str],
        reason: Optional[str],
    ) -> CertificateEdit:
        entry = CertificateEdit(
            certificate_id=certificate.id,
            edited_by=edited_by,
            field_name=field_name,
            old_value=old_value,
            new_value=new_value,
            edit_reason=reason,
            created_at=datetime.now(timezone.utc),
        )
        self.db.add(entry)
        return entry

    @db_exception
    def edit_certificate(
        self,
        certificate_id: str,
        edited_by: str,
        field_name: str,
        new_value: str,
        old_value: Optional[str] = None,
        edit_reason: Optional[str] = None,
    ) -> Certificate:
        """
        Change one editable field and append an audit entry, in one
        transaction. Revoked certificates are immutable. A supplied
        old_value must match the stored value.
        """
        if field_name not in EDITABLE_FIELDS:
            raise ValidationFailed(
                f"Field '{field_name}' cannot be edited; allowed: {', '.join(EDITABLE_FIELDS)}"
            )

        certificate = self.get_certificate(certificate_id)
        if certificate.is_revoked:
            raise Conflict("Revoked certificates cannot be edited")

        current = getattr(certificate, field_name)
        if old_value is not None and not self._same_value(field_name, old_value, current):
            raise Conflict(
                f"Stale edit: {field_name} is '{_stringify(current)}', not '{old_value}'"
            )

        parsed = self._parse_field_value(field_name, new_value)
        setattr(certificate, field_name, parsed)
        certificate.updated_at = datetime.now(timezone.utc)
        self._audit(
            certificate,
            edited_by,
            field_name,
            _stringify(current),
            _stringify(parsed),
            edit_reason,
        )

        self.db.commit()
        logger.info(
            f"Certificate {certificate.certificate_number}: {field_name} edited by {edited_by}"
        )
        return self.get_certificate(certificate_id)

    @db_exception
    def revoke_certificate(
        self, certificate_id: str, revoked_by: str, reason: str
    ) -> Certificate:
        """Mark a certificate revoked. The row is kept; revoking twice is rejected."""
        if not reason or not reason.strip():
            raise ValidationFailed("A revocation reason is required")

        certificate = self.get_certificate(certificate_id)
        if certificate.is_revoked:
            raise Conflict("Certificate is already revoked")

        now = datetime.now(timezone.utc)
        certificate.is_revoked = True
        certificate.revoked_at = now
        certificate.revoked_by = revoked_by
        certificate.revoked_reason = reason.strip()
        certificate.updated_at = now
        self._audit(certificate, revoked_by, "is_revoked", "false", "true", reason.strip())

        self.db.commit()
        logger.info(
            f"Certificate {certificate.certificate_number} revoked by {revoked_by}: {reason.strip()}"
        )
        return self.get_certificate(certificate_id)

    @db_exception
    def reinstate_certificate(
        self, certificate_id: str, reinstated_by: str, reason: str
    ) -> Certificate:
        """Explicit undo of a revocation, recorded in the audit log."""
        if not reason or not reason.strip():
            raise ValidationFailed("A reason is required to reinstate a certificate")

        certificate = self.get_certificate(certificate_id)
        if not certificate.is_revoked:
            raise Conflict("Certificate is not revoked")

        certificate.is_revoked = False
        certificate.revoked_at = None
        certificate.revoked_by = None
        certificate.revoked_reason = None
        certificate.updated_at = datetime.now(timezone.utc)
        self._audit(
            certificate, reinstated_by, "is_revoked", "true", "false", reason.strip()
        )

        self.db.commit()
        logger.info(
            f"Certificate {certificate.certificate_number} reinstated by {reinstated_by}"
        )
        return self.get_certificate(certificate_id)

    # ==================== Templates ====================

    def list_templates(self, credit_type: Optional[str] = None) -> List[CertificateTemplate]:
        query = self.db.query(CertificateTemplate)
        if credit_type:
            query = query.filter(CertificateTemplate.credit_type == credit_type)
        return query.order_by(CertificateTemplate.name).all()

    @db_exception
    def upsert_template(self, template_in: CertificateTemplateBase) -> CertificateTemplate:
        template = (
            self.db.query(CertificateTemplate)
            .filter(CertificateTemplate.credit_type == template_in.credit_type)
            .first()
        )
        if template is None:
            template = CertificateTemplate(credit_type=template_in.credit_type)
            self.db.add(template)

        template.name = template_in.name
        template.title = template_in.title
        template.body_text = template_in.body_text
        template.issuer_name = template_in.issuer_name

        self.db.commit()
        self.db.refresh(template)
        return template

    def ensure_default_templates(self) -> int:
        """Create a template for every credit type that has none."""
        existing = {t.credit_type for t in self.db.query(CertificateTemplate).all()}
        created = 0
        for credit_type in CREDIT_TYPES:
            if credit_type in existing:
                continue
            self.db.add(
                CertificateTemplate(
                    name=f"{credit_type} Continuing Education",
                    credit_type=credit_type,
                    title=f"{credit_type} {DEFAULT_TITLE}",
                )
            )
            created += 1
        if created:
            self.db.commit()
        return created
