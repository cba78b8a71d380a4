# app/models/course_enrollment.py
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from app.core.database import Base, generate_uuid

ENROLLMENT_TYPES = ("self", "admin", "gift", "comp")
ENROLLMENT_STATUSES = ("active", "pending", "expired", "revoked")

# Allowed status moves; anything else is rejected
STATUS_TRANSITIONS = {
    "pending": {"active", "revoked"},
    "active": {"expired", "revoked"},
    "expired": set(),
    "revoked": set(),
}
TERMINAL_STATUSES = {"expired", "revoked"}


class Enrollment(Base):
    """
    Links one user to one course.
    At most one row exists per (user, course).
    """

    __tablename__ = "user_enrollments"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_user_enrollments_user_course"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)

    # User and Course relationship
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    course_id = Column(
        String(36), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Enrollment details
    enrollment_type = Column(String(20), nullable=False, default="self")
    status = Column(String(20), nullable=False, default="active")
    enrollment_notes = Column(Text, nullable=True)
    created_by = Column(String(36), nullable=True)  # admin who enrolled the user
    payment_id = Column(String(255), nullable=True)

    # Progress tracking
    progress = Column(Integer, default=0, nullable=False)
    completed = Column(Boolean, default=False, nullable=False)
    exam_score = Column(Numeric(5, 2), nullable=True)
    exam_passed = Column(Boolean, nullable=True)

    # Timestamps
    enrolled_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    last_accessed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def course_title(self):
        return self.course.title if self.course else None

    @property
    def course_sku(self):
        return self.course.sku if self.course else None

    def __repr__(self):
        return f"<Enrollment(id={self.id}, user_id={self.user_id}, course_id={self.course_id}, status={self.status})>"
