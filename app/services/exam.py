# app/services/exam.py
import logging
from typing import List

from sqlalchemy.orm import Session, selectinload

from app.core.decorator import NotFound, db_exception
from app.models.course import Course
from app.models.exam import Exam, ExamQuestion
from app.schemas.exam import ExamCreate

logger = logging.getLogger(__name__)


class ExamService:
    def __init__(self, db: Session):
        self.db = db

    @db_exception
    def create_exam(self, course_id: str, exam_in: ExamCreate) -> Exam:
        """Create an exam and its ordered questions in one transaction."""
        course = self.db.query(Course).filter(Course.id == course_id).first()
        if not course:
            raise NotFound("Course not found")

        exam = Exam(
            course_id=course.id,
            title=exam_in.title,
            description=exam_in.description,
            passing_score=exam_in.passing_score,
            attempt_limit=exam_in.attempt_limit,
        )
        exam.questions = [
            ExamQuestion(
                position=index,
                question_text=q.question_text,
                options=q.options,
                correct_options=sorted(set(q.correct_options)),
                explanation=q.explanation,
            )
            for index, q in enumerate(exam_in.questions)
        ]

        self.db.add(exam)
        self.db.commit()
        self.db.refresh(exam)

        logger.info(
            f"Created exam {exam.id} for course {course.sku} "
            f"({len(exam.questions)} questions, limit={exam.attempt_limit})"
        )
        return exam

    def get_exam(self, exam_id: str) -> Exam:
        exam = (
            self.db.query(Exam)
            .options(selectinload(Exam.questions))
            .filter(Exam.id == exam_id)
            .first()
        )
        if not exam:
            raise NotFound("Exam not found")
        return exam

    def list_course_exams(self, course_id: str) -> List[Exam]:
        if not self.db.query(Course.id).filter(Course.id == course_id).first():
            raise NotFound("Course not found")
        return (
            self.db.query(Exam)
            .options(selectinload(Exam.questions))
            .filter(Exam.course_id == course_id)
            .order_by(Exam.title)
            .all()
        )
