# app/services/course_enrollment.py
import logging
import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import and_, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.core.decorator import (
    Conflict,
    DBException,
    NotAuthorized,
    NotFound,
    UpstreamError,
    ValidationFailed,
    db_exception,
)
from app.models.course import Course
from app.models.course_enrollment import (
    STATUS_TRANSITIONS,
    TERMINAL_STATUSES,
    Enrollment,
)
from app.models.user import Profile, User
from app.schemas.course_enrollment import EnrollmentResult, EnrollmentUpdate
from app.schemas.user import ReconcileResponse
from app.services.identity import IdentityProvider

logger = logging.getLogger(__name__)

ALREADY_ENROLLED = "User is already enrolled in this course"


class CourseEnrollmentService:
    def __init__(self, db: Session):
        self.db = db

    # ==================== Creation ====================

    def _find_pair(self, user_id: str, course_id: str) -> Optional[Enrollment]:
        return (
            self.db.query(Enrollment)
            .filter(
                and_(
                    Enrollment.user_id == user_id,
                    Enrollment.course_id == course_id,
                )
            )
            .first()
        )

    def create_enrollment(
        self,
        user_id: str,
        course_id: str,
        enrollment_type: str = "self",
        status: str = "active",
        notes: Optional[str] = None,
        admin_user_id: Optional[str] = None,
        payment_id: Optional[str] = None,
    ) -> EnrollmentResult:
        """
        Enroll a user in a course.
        Never raises: the outcome (including a duplicate enrollment, which
        carries the id of the existing record) is returned as a result.
        """
        try:
            if not self.db.query(User.id).filter(User.id == user_id).first():
                return EnrollmentResult(
                    success=False, error="User not found", error_type="not_found"
                )
            if not self.db.query(Course.id).filter(Course.id == course_id).first():
                return EnrollmentResult(
                    success=False, error="Course not found", error_type="not_found"
                )

            existing = self._find_pair(user_id, course_id)
            if existing:
                logger.warning(
                    f"Enrollment for user {user_id} in course {course_id} already exists ({existing.id})"
                )
                return EnrollmentResult(
                    success=False,
                    enrollment_id=existing.id,
                    is_new=False,
                    error=ALREADY_ENROLLED,
                    error_type="conflict",
                )

            enrollment = Enrollment(
                user_id=user_id,
                course_id=course_id,
                progress=0,
                completed=False,
                enrolled_at=datetime.now(timezone.utc),
                enrollment_type=enrollment_type,
                status=status,
                enrollment_notes=notes,
                created_by=admin_user_id,
                payment_id=payment_id,
            )
            self.db.add(enrollment)

            try:
                self.db.commit()
            except IntegrityError:
                # Lost a race against a concurrent insert for the same pair
                self.db.rollback()
                existing = self._find_pair(user_id, course_id)
                if existing is None:
                    raise
                logger.warning(
                    f"Concurrent enrollment detected for user {user_id} in course {course_id}"
                )
                return EnrollmentResult(
                    success=False,
                    enrollment_id=existing.id,
                    is_new=False,
                    error=ALREADY_ENROLLED,
                    error_type="conflict",
                )

            logger.info(
                f"Enrolled user {user_id} in course {course_id} "
                f"(type={enrollment_type}, status={status}, id={enrollment.id})"
            )
            return EnrollmentResult(
                success=True, enrollment_id=enrollment.id, is_new=True
            )

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create enrollment: {e}", exc_info=True)
            return EnrollmentResult(
                success=False,
                error=f"Failed to create enrollment: {e}",
                error_type="database_error",
            )

    # ==================== Lookup ====================

    def resolve_user_id(
        self, email: str, provider: Optional[IdentityProvider] = None
    ) -> Optional[str]:
        """
        Map an email to a user id: users table first, then legacy
        profiles, then the identity provider.
        """
        email = email.strip().lower()

        user = (
            self.db.query(User)
            .filter(func.lower(User.email) == email)
            .order_by(User.created_at, User.id)
            .first()
        )
        if user:
            return user.id

        profile = (
            self.db.query(Profile)
            .filter(func.lower(Profile.email) == email)
            .order_by(Profile.created_at, Profile.id)
            .first()
        )
        if profile:
            logger.info(f"Resolved {email} through profiles table")
            return profile.id

        if provider is not None:
            try:
                provider_user = provider.get_user_by_email(email)
            except UpstreamError as e:
                logger.error(f"Identity provider lookup failed for {email}: {e.message}")
                return None
            if provider_user:
                logger.info(f"Resolved {email} through identity provider")
                return provider_user.id

        return None

    def check_enrollment(
        self,
        course_id: str,
        user_id: Optional[str] = None,
        email: Optional[str] = None,
        provider: Optional[IdentityProvider] = None,
    ) -> dict:
        """Answer "is this user enrolled in this course" explicitly."""
        if not user_id and not email:
            raise ValidationFailed("Either user_id or email is required")

        if not user_id:
            user_id = self.resolve_user_id(email, provider)
            if not user_id:
                return {
                    "is_enrolled": False,
                    "user_id": None,
                    "enrollment": None,
                    "message": f"No user found for email {email}",
                }

        enrollment = self.get_enrollment(user_id, course_id)
        if not enrollment:
            return {
                "is_enrolled": False,
                "user_id": user_id,
                "enrollment": None,
                "message": "User is not enrolled in this course",
            }

        return {
            "is_enrolled": True,
            "user_id": user_id,
            "enrollment": enrollment,
            "message": None,
        }

    def get_enrollment(self, user_id: str, course_id: str) -> Optional[Enrollment]:
        """Get specific enrollment for a user and course"""
        return (
            self.db.query(Enrollment)
            .options(joinedload(Enrollment.course))
            .filter(
                and_(
                    Enrollment.user_id == user_id,
                    Enrollment.course_id == course_id,
                )
            )
            .first()
        )

    def get_enrollment_by_id(self, enrollment_id: str) -> Enrollment:
        enrollment = (
            self.db.query(Enrollment)
            .options(joinedload(Enrollment.course))
            .filter(Enrollment.id == enrollment_id)
            .first()
        )
        if not enrollment:
            raise NotFound("Enrollment not found")
        return enrollment

    def _paginate(self, query, page: int, size: int) -> Tuple[List[Enrollment], dict]:
        total = query.count()
        offset = (page - 1) * size
        enrollments = (
            query.order_by(Enrollment.enrolled_at.desc(), Enrollment.id)
            .offset(offset)
            .limit(size)
            .all()
        )
        pagination = {
            "total": total,
            "page": page,
            "size": size,
            "total_pages": math.ceil(total / size) if size > 0 else 0,
        }
        return enrollments, pagination

    def get_user_enrollments(
        self, user_id: str, page: int = 1, size: int = 20
    ) -> Tuple[List[Enrollment], dict]:
        """All courses a user is enrolled in, most recent first."""
        query = (
            self.db.query(Enrollment)
            .options(joinedload(Enrollment.course))
            .filter(Enrollment.user_id == user_id)
        )
        return self._paginate(query, page, size)

    def list_enrollments(
        self,
        page: int = 1,
        size: int = 20,
        course_id: Optional[str] = None,
        status: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Tuple[List[Enrollment], dict]:
        query = self.db.query(Enrollment).options(joinedload(Enrollment.course))
        if course_id:
            query = query.filter(Enrollment.course_id == course_id)
        if status:
            query = query.filter(Enrollment.status == status)
        if user_id:
            query = query.filter(Enrollment.user_id == user_id)
        return self._paginate(query, page, size)

    # ==================== Mutation ====================

    def _apply_progress(
        self, enrollment: Enrollment, progress: int, completed: Optional[bool] = None
    ) -> None:
        if progress is None or progress < 0 or progress > 100:
            raise ValidationFailed("Progress must be between 0 and 100")
        if enrollment.status in TERMINAL_STATUSES:
            raise Conflict(f"Enrollment is {enrollment.status}; progress is frozen")

        now = datetime.now(timezone.utc)
        if progress == 100:
            completed = True

        enrollment.progress = progress
        if completed is not None:
            if completed and not enrollment.completed:
                enrollment.completed_at = now
            enrollment.completed = completed
        enrollment.last_accessed_at = now

    def _apply_status(self, enrollment: Enrollment, new_status: str) -> None:
        if enrollment.status == new_status:
            return
        if new_status not in STATUS_TRANSITIONS.get(enrollment.status, set()):
            raise Conflict(
                f"Cannot change enrollment status from {enrollment.status} to {new_status}"
            )

        logger.info(
            f"Enrollment {enrollment.id} status {enrollment.status} -> {new_status}"
        )
        enrollment.status = new_status

    @db_exception
    def update_progress(
        self, enrollment_id: str, progress: int, completed: Optional[bool] = None
    ) -> Enrollment:
        """
        Update progress (0-100). Reaching 100 always marks the enrollment
        completed. Expired and revoked enrollments are frozen.
        """
        enrollment = self.get_enrollment_by_id(enrollment_id)
        self._apply_progress(enrollment, progress, completed)
        self.db.commit()
        self.db.refresh(enrollment)
        return enrollment

    @db_exception
    def change_status(self, enrollment_id: str, new_status: str) -> Enrollment:
        """Move along pending -> active -> {expired, revoked}."""
        enrollment = self.get_enrollment_by_id(enrollment_id)
        self._apply_status(enrollment, new_status)
        self.db.commit()
        self.db.refresh(enrollment)
        return enrollment

    @db_exception
    def update_enrollment(
        self, enrollment_id: str, update: EnrollmentUpdate, actor: User
    ) -> Enrollment:
        """
        PATCH semantics: learners may move their own progress; status and
        notes are admin-only. Either every requested change is saved or
        none is.
        """
        enrollment = self.get_enrollment_by_id(enrollment_id)
        if not actor.is_admin:
            if enrollment.user_id != actor.id:
                raise NotAuthorized("Not allowed to modify this enrollment")
            if update.status is not None or update.notes is not None:
                raise NotAuthorized("Only admins can change enrollment status or notes")

        try:
            if update.status is not None:
                self._apply_status(enrollment, update.status)
            if update.notes is not None:
                enrollment.enrollment_notes = update.notes
            if update.progress is not None or update.completed is not None:
                progress = (
                    update.progress if update.progress is not None else enrollment.progress
                )
                self._apply_progress(enrollment, progress, update.completed)
        except DBException:
            self.db.rollback()
            raise

        self.db.commit()
        self.db.refresh(enrollment)
        return enrollment

    @db_exception
    def delete_enrollment(self, enrollment_id: str) -> bool:
        enrollment = self.get_enrollment_by_id(enrollment_id)
        self.db.delete(enrollment)
        self.db.commit()
        logger.info(f"Deleted enrollment {enrollment_id}")
        return True

    def record_exam_result(
        self, user_id: str, course_id: str, score: Decimal, passed: bool
    ) -> Optional[Enrollment]:
        """
        Copy an exam outcome onto the learner's enrollment. Does not commit:
        callers fold this into their own transaction.
        """
        enrollment = self._find_pair(user_id, course_id)
        if not enrollment:
            return None

        enrollment.exam_score = score
        enrollment.exam_passed = passed
        enrollment.last_accessed_at = datetime.now(timezone.utc)
        if passed and enrollment.status not in TERMINAL_STATUSES:
            if not enrollment.completed:
                enrollment.completed_at = datetime.now(timezone.utc)
            enrollment.completed = True
            enrollment.progress = 100
        self.db.flush()
        return enrollment

    # ==================== Identity reconciliation ====================

    def reconcile_identity(
        self,
        email: str,
        provider: Optional[IdentityProvider] = None,
        canonical_id: Optional[str] = None,
    ) -> ReconcileResponse:
        """
        Re-point enrollments recorded under stale ids for this email to the
        canonical id. Each enrollment is handled independently; failures are
        reported and do not stop the rest.
        """
        email = email.strip().lower()

        if canonical_id is None and provider is not None:
            try:
                provider_user = provider.get_user_by_email(email)
                if provider_user:
                    canonical_id = provider_user.id
            except UpstreamError as e:
                logger.error(
                    f"Identity provider unavailable during reconciliation: {e.message}"
                )

        local_users = (
            self.db.query(User)
            .filter(func.lower(User.email) == email)
            .order_by(User.created_at, User.id)
            .all()
        )
        if canonical_id is None:
            if not local_users:
                raise NotFound(f"User not found for email {email}")
            canonical_id = local_users[0].id

        # The canonical row must exist before enrollments can point at it
        if not any(u.id == canonical_id for u in local_users):
            self.db.add(User(id=canonical_id, email=email, role="user"))
            self.db.commit()
            logger.info(f"Created canonical user record {canonical_id} for {email}")

        alias_ids = {u.id for u in local_users if u.id != canonical_id}
        alias_ids.update(
            p.id
            for p in self.db.query(Profile)
            .filter(func.lower(Profile.email) == email)
            .all()
            if p.id != canonical_id
        )

        result = ReconcileResponse(
            email=email, canonical_user_id=canonical_id, alias_ids=sorted(alias_ids)
        )
        if not alias_ids:
            return result

        stale = (
            self.db.query(Enrollment)
            .filter(Enrollment.user_id.in_(alias_ids))
            .order_by(Enrollment.enrolled_at, Enrollment.id)
            .all()
        )
        logger.info(
            f"Reconciling {len(stale)} enrollment(s) for {email} onto {canonical_id}"
        )

        for enrollment in stale:
            enrollment_id = enrollment.id
            try:
                enrollment.user_id = canonical_id
                self.db.commit()
                result.fixed_enrollments += 1
            except IntegrityError:
                self.db.rollback()
                message = (
                    f"Enrollment {enrollment_id}: canonical user already enrolled "
                    f"in course {enrollment.course_id}"
                )
                logger.warning(message)
                result.errors.append(message)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to re-point enrollment {enrollment_id}: {e}")
                result.errors.append(f"Enrollment {enrollment_id}: {e}")

        return result
