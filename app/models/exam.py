from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from app.core.database import Base, generate_uuid

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Exam(Base):
    __tablename__ = "exams"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    course_id = Column(
        String(36), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    passing_score = Column(Numeric(5, 2), nullable=False, default=70)  # percent
    attempt_limit = Column(Integer, nullable=True)  # NULL = unlimited

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    @property
    def num_questions(self) -> int:
        return len(self.questions)

    def __repr__(self):
        return f"<Exam(id={self.id}, course_id={self.course_id}, title='{self.title}')>"


class ExamQuestion(Base):
    __tablename__ = "exam_questions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    exam_id = Column(
        String(36), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False, default=0)
    question_text = Column(Text, nullable=False)
    options = Column(JSONType, nullable=False)  # {"a": "...", "b": "..."}
    correct_options = Column(JSONType, nullable=False)  # ["a"] or ["a", "c"]
    explanation = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
