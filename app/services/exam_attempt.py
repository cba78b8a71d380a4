# app/services/exam_attempt.py
import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Tuple

from sqlalchemy import and_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.core.config import settings
from app.core.decorator import (
    AttemptLimitReached,
    Conflict,
    NotAuthorized,
    NotFound,
    ValidationFailed,
    db_exception,
)
from app.models.certificate import Certificate
from app.models.exam import Exam, ExamQuestion
from app.models.exam_attempt import ExamAnswer, ExamAttempt
from app.models.user import User
from app.services.certificate import CertificateService
from app.services.course_enrollment import CourseEnrollmentService

logger = logging.getLogger(__name__)


class ExamAttemptService:
    def __init__(self, db: Session):
        self.db = db

    # ==================== Helpers ====================

    def _get_exam(self, exam_id: str) -> Exam:
        exam = (
            self.db.query(Exam)
            .options(selectinload(Exam.questions))
            .filter(Exam.id == exam_id)
            .first()
        )
        if not exam:
            raise NotFound("Exam not found")
        return exam

    def get_owned_attempt(self, attempt_id: str, actor: User) -> ExamAttempt:
        """
        Load an attempt the actor may act on: their own, or any attempt
        when acting as admin.
        """
        attempt = self.db.query(ExamAttempt).filter(ExamAttempt.id == attempt_id).first()
        if not attempt:
            raise NotFound("Exam attempt not found")
        if attempt.user_id != actor.id and not actor.is_admin:
            logger.warning(
                f"User {actor.id} tried to access attempt {attempt_id} owned by {attempt.user_id}"
            )
            raise NotAuthorized("Not allowed to access this exam attempt")
        return attempt

    def _count_attempts(self, user_id: str, exam_id: str) -> Tuple[int, int]:
        count, highest = (
            self.db.query(
                func.count(ExamAttempt.id), func.max(ExamAttempt.attempt_number)
            )
            .filter(
                and_(
                    ExamAttempt.user_id == user_id,
                    ExamAttempt.exam_id == exam_id,
                )
            )
            .one()
        )
        return count or 0, highest or 0

    # ==================== Attempts ====================

    def list_attempts(self, user_id: str, exam_id: str) -> List[ExamAttempt]:
        """Attempts for one learner and exam, most recent first."""
        self._get_exam(exam_id)
        return (
            self.db.query(ExamAttempt)
            .filter(
                and_(
                    ExamAttempt.user_id == user_id,
                    ExamAttempt.exam_id == exam_id,
                )
            )
            .order_by(ExamAttempt.started_at.desc(), ExamAttempt.attempt_number.desc())
            .all()
        )

    @db_exception
    def create_attempt(self, user_id: str, exam_id: str) -> ExamAttempt:
        """
        Start a new attempt, honouring the exam's attempt limit.
        The (user, exam, attempt_number) unique constraint turns concurrent
        creations into a conflict that is retried against a fresh count.
        """
        exam = self._get_exam(exam_id)

        for retry in range(settings.attempt_create_retries):
            count, highest = self._count_attempts(user_id, exam_id)

            if exam.attempt_limit is not None and count >= exam.attempt_limit:
                logger.warning(
                    f"User {user_id} reached attempt limit ({exam.attempt_limit}) for exam {exam_id}"
                )
                raise AttemptLimitReached(exam.attempt_limit)

            attempt = ExamAttempt(
                user_id=user_id,
                exam_id=exam_id,
                attempt_number=highest + 1,
                score=None,
                passed=None,
                completed=False,
                started_at=datetime.now(timezone.utc),
                completed_at=None,
            )
            self.db.add(attempt)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.warning(
                    f"Concurrent attempt creation for user {user_id} on exam {exam_id}, retry {retry + 1}"
                )
                continue

            self.db.refresh(attempt)
            logger.info(
                f"Created attempt #{attempt.attempt_number} ({attempt.id}) for user {user_id} on exam {exam_id}"
            )
            return attempt

        raise Conflict("Could not start exam attempt, please retry")

    def get_attempt_with_answers(
        self, attempt_id: str, actor: User
    ) -> Tuple[ExamAttempt, List[ExamAnswer]]:
        attempt = self.get_owned_attempt(attempt_id, actor)
        answers = (
            self.db.query(ExamAnswer)
            .filter(ExamAnswer.attempt_id == attempt.id)
            .all()
        )
        return attempt, answers

    # ==================== Answers ====================

    @db_exception
    def submit_answer(
        self,
        attempt_id: str,
        question_id: str,
        selected_options: List[str],
        actor: User,
    ) -> ExamAnswer:
        """
        Record (or replace) the answer to one question. Correctness is an
        order-insensitive comparison with the stored correct options.
        """
        attempt = self.get_owned_attempt(attempt_id, actor)
        if attempt.completed:
            raise Conflict("Exam attempt is already completed")

        question = (
            self.db.query(ExamQuestion)
            .filter(
                and_(
                    ExamQuestion.id == question_id,
                    ExamQuestion.exam_id == attempt.exam_id,
                )
            )
            .first()
        )
        if not question:
            raise NotFound("Question not found in this exam")

        selected = sorted(set(selected_options))
        unknown = set(selected) - set(question.options or {})
        if unknown:
            raise ValidationFailed(f"Unknown option(s): {', '.join(sorted(unknown))}")

        is_correct = set(selected) == set(question.correct_options or [])

        answer = ExamAnswer(
            attempt_id=attempt.id,
            question_id=question.id,
            selected_options=selected,
            is_correct=is_correct,
        )
        self.db.add(answer)
        try:
            self.db.commit()
        except IntegrityError:
            # Already answered: update the existing row in place
            self.db.rollback()
            answer = (
                self.db.query(ExamAnswer)
                .filter(
                    and_(
                        ExamAnswer.attempt_id == attempt_id,
                        ExamAnswer.question_id == question_id,
                    )
                )
                .one()
            )
            answer.selected_options = selected
            answer.is_correct = is_correct
            answer.updated_at = datetime.now(timezone.utc)
            self.db.commit()

        self.db.refresh(answer)
        return answer

    # ==================== Completion ====================

    def calculate_score(self, attempt: ExamAttempt, exam: Exam) -> Decimal:
        total = exam.num_questions
        if total == 0:
            return Decimal("0")
        correct = (
            self.db.query(func.count(ExamAnswer.id))
            .filter(
                and_(
                    ExamAnswer.attempt_id == attempt.id,
                    ExamAnswer.is_correct.is_(True),
                )
            )
            .scalar()
            or 0
        )
        return (Decimal(correct) * 100 / Decimal(total)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )

    def complete_attempt(
        self,
        attempt_id: str,
        actor: User,
        score: Optional[Decimal] = None,
        passed: Optional[bool] = None,
    ) -> Tuple[ExamAttempt, List[Certificate]]:
        """
        Close an attempt and persist its result. On a pass, the enrollment's
        exam result is recorded and certificates are issued; all of it is
        committed as one transaction.
        """
        attempt = self.get_owned_attempt(attempt_id, actor)
        if attempt.completed:
            raise Conflict("Exam attempt is already completed")

        exam = self._get_exam(attempt.exam_id)
        passing_score = Decimal(exam.passing_score)

        if score is None:
            score = self.calculate_score(attempt, exam)
        score = Decimal(score)
        meets_threshold = score >= passing_score
        if passed is None:
            passed = meets_threshold
        elif passed != meets_threshold:
            raise ValidationFailed(
                f"passed={passed} contradicts score {score} against passing score {passing_score}"
            )

        attempt.completed = True
        attempt.completed_at = datetime.now(timezone.utc)
        attempt.score = score
        attempt.passed = passed

        certificates: List[Certificate] = []
        try:
            enrollment = CourseEnrollmentService(self.db).record_exam_result(
                attempt.user_id, exam.course_id, score, passed
            )
            if passed and enrollment is not None:
                certificates = CertificateService(self.db).auto_generate_certificates(
                    user_id=attempt.user_id,
                    course_id=exam.course_id,
                    enrollment_id=enrollment.id,
                    exam_score=score,
                    passing_score=passing_score,
                    commit=False,
                )
            elif passed:
                logger.warning(
                    f"Attempt {attempt.id} passed but user {attempt.user_id} has no enrollment in course {exam.course_id}"
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Failed to complete attempt {attempt_id}", exc_info=True)
            raise

        self.db.refresh(attempt)
        logger.info(
            f"Attempt {attempt.id} completed: score={score}, passed={passed}, "
            f"certificates={len(certificates)}"
        )
        return attempt, certificates
