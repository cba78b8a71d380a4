from sqlalchemy import (
    CheckConstraint,
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

CREDIT_TYPES = ("CPA", "CFP", "CDFA", "EA", "OTRP", "EA/OTRP", "ERPA")
COURSE_FORMATS = ("online", "hardcopy", "video")


class Course(Base):
    __tablename__ = "courses"
    __table_args__ = (CheckConstraint("length(trim(sku)) > 0", name="ck_courses_sku"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    sku = Column(String(50), unique=True, index=True, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    author = Column(String(255), nullable=True)
    main_subject = Column(String(255), nullable=True)
    table_of_contents_url = Column(Text, nullable=True)
    course_content_url = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self):
        return f"Course(id={self.id}, sku={self.sku}, title={self.title})"


class CourseFormat(Base):
    """One purchasable format of a course and its price."""

    __tablename__ = "course_formats"
    __table_args__ = (UniqueConstraint("course_id", "format"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    course_id = Column(
        String(36), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False
    )
    format = Column(String(20), nullable=False)  # online, hardcopy, video
    price = Column(Numeric(10, 2), nullable=False)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class CourseCredit(Base):
    """Credits a course grants for one credit type."""

    __tablename__ = "course_credits"
    __table_args__ = (UniqueConstraint("course_id", "credit_type"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    course_id = Column(
        String(36), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False
    )
    credit_type = Column(String(20), nullable=False)
    amount = Column(Numeric(6, 2), nullable=False)
    course_number = Column(String(100), nullable=True)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class CourseState(Base):
    __tablename__ = "course_states"
    __table_args__ = (UniqueConstraint("course_id", "state_code"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    course_id = Column(
        String(36), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False
    )
    state_code = Column(String(2), nullable=False)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
