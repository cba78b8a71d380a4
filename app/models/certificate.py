from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from app.core.database import Base, generate_uuid
from app.models.exam import JSONType

# Fields an admin may change after issuance
EDITABLE_FIELDS = (
    "recipient_name",
    "course_title",
    "exam_score",
    "credits_earned",
    "completion_date",
)


class CertificateTemplate(Base):
    __tablename__ = "certificate_templates"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    credit_type = Column(String(20), unique=True, nullable=False)
    title = Column(String(255), nullable=False)
    body_text = Column(Text, nullable=True)
    issuer_name = Column(String(255), nullable=True)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class Certificate(Base):
    """
    Issued credential for one credit type. Revocable, never deleted.
    Recipient name and course title are copied at issuance time.
    """

    __tablename__ = "certificates"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "course_id", "credit_type", name="uq_certificates_credit"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    certificate_number = Column(String(50), unique=True, nullable=False, index=True)

    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    course_id = Column(String(36), ForeignKey("courses.id"), nullable=False, index=True)
    enrollment_id = Column(
        String(36), ForeignKey("user_enrollments.id", ondelete="SET NULL"), nullable=True
    )
    template_id = Column(
        String(36), ForeignKey("certificate_templates.id"), nullable=True
    )

    credit_type = Column(String(20), nullable=False)
    title = Column(String(255), nullable=False)
    recipient_name = Column(String(255), nullable=False)
    course_title = Column(String(255), nullable=False)
    completion_date = Column(DateTime(timezone=True), nullable=False)
    exam_score = Column(Numeric(5, 2), nullable=True)
    credits_earned = Column(Numeric(6, 2), nullable=False)
    custom_data = Column(JSONType, nullable=True)

    # Revocation
    is_revoked = Column(Boolean, default=False, nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoked_by = Column(String(36), nullable=True)
    revoked_reason = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def course_sku(self):
        return self.course.sku if self.course else None

    def __repr__(self):
        return f"<Certificate(number={self.certificate_number}, credit_type={self.credit_type})>"


class CertificateEdit(Base):
    """Append-only audit log of certificate changes."""

    __tablename__ = "certificate_edits"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    certificate_id = Column(
        String(36), ForeignKey("certificates.id"), nullable=False, index=True
    )
    edited_by = Column(String(36), nullable=False)
    field_name = Column(String(50), nullable=False)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    edit_reason = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
