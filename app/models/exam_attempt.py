# app/models/exam_attempt.py
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from app.core.database import Base, generate_uuid
from app.models.exam import JSONType


class ExamAttempt(Base):
    __tablename__ = "user_exam_attempts"
    __table_args__ = (
        # Serialises concurrent attempt creation for the same learner and exam
        UniqueConstraint(
            "user_id", "exam_id", "attempt_number", name="uq_exam_attempts_number"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)

    # Relationships
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    exam_id = Column(
        String(36), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    attempt_number = Column(Integer, nullable=False)

    # Result (NULL while in progress)
    score = Column(Numeric(5, 2), nullable=True)
    passed = Column(Boolean, nullable=True)
    completed = Column(Boolean, default=False, nullable=False)

    # Time tracking
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    @property
    def status(self) -> str:
        return "completed" if self.completed else "in_progress"

    def __repr__(self):
        return (
            f"<ExamAttempt(id={self.id}, user_id={self.user_id}, score={self.score})>"
        )


class ExamAnswer(Base):
    __tablename__ = "user_exam_answers"
    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_exam_answers_question"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    attempt_id = Column(
        String(36),
        ForeignKey("user_exam_attempts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id = Column(
        String(36), ForeignKey("exam_questions.id", ondelete="CASCADE"), nullable=False
    )
    selected_options = Column(JSONType, nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
