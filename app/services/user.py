# app/services/user.py
import logging

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.decorator import NotFound
from app.models.user import Profile, User
from app.schemas.user import ProviderUser, RoleSyncResponse, UserSyncResponse
from app.services.course_enrollment import CourseEnrollmentService
from app.services.identity import IdentityProvider

logger = logging.getLogger(__name__)

ROLES = ("user", "admin")


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: str) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFound("User not found")
        return user

    def _sync_one(self, provider_user: ProviderUser, result: UserSyncResponse) -> None:
        email = provider_user.email.strip().lower()
        user = self.db.query(User).filter(User.id == provider_user.id).first()

        if user is None:
            self.db.add(
                User(
                    id=provider_user.id,
                    email=email,
                    name=provider_user.name,
                    role="user",
                    last_sign_in_at=provider_user.last_sign_in_at,
                )
            )
            self.db.commit()
            result.created += 1
            logger.info(f"Created user record {provider_user.id} for {email}")
        else:
            changed = False
            if (user.email or "").lower() != email:
                user.email = email
                changed = True
            if provider_user.name and user.name != provider_user.name:
                user.name = provider_user.name
                changed = True
            if provider_user.last_sign_in_at is not None:
                user.last_sign_in_at = provider_user.last_sign_in_at
            self.db.commit()
            if changed:
                result.updated += 1
            else:
                result.skipped += 1

        duplicates = (
            self.db.query(User.id)
            .filter(func.lower(User.email) == email, User.id != provider_user.id)
            .count()
        )
        if duplicates:
            reconciled = CourseEnrollmentService(self.db).reconcile_identity(
                email, canonical_id=provider_user.id
            )
            result.reconciled_enrollments += reconciled.fixed_enrollments
            result.errors.extend(reconciled.errors)

    def sync_users(self, provider: IdentityProvider) -> UserSyncResponse:
        """
        Make sure every identity-provider account has a users row keyed by
        its provider id. Rows found under the same email with another id
        get their enrollments moved to the provider id.
        """
        provider_users = provider.list_users()
        result = UserSyncResponse(total=len(provider_users))

        for provider_user in provider_users:
            if not provider_user.email:
                result.skipped += 1
                continue
            try:
                self._sync_one(provider_user, result)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to sync user {provider_user.id}: {e}")
                result.errors.append(f"{provider_user.email}: {e}")

        logger.info(
            f"User sync finished: {result.created} created, {result.updated} updated, "
            f"{result.skipped} skipped, {len(result.errors)} errors"
        )
        return result

    def sync_roles(self) -> RoleSyncResponse:
        """Copy profiles.role onto users.role where the ids match."""
        rows = (
            self.db.query(Profile, User)
            .join(User, User.id == Profile.id)
            .order_by(Profile.id)
            .all()
        )
        result = RoleSyncResponse(total=len(rows))

        for profile, user in rows:
            role = (profile.role or "").strip().lower()
            if role not in ROLES:
                result.errors.append(f"{profile.id}: unknown role '{profile.role}'")
                continue
            if user.role == role:
                continue
            try:
                previous = user.role
                user.role = role
                self.db.commit()
                result.updated += 1
                result.details.append(f"{user.id}: {previous} -> {role}")
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to sync role for {profile.id}: {e}")
                result.errors.append(f"{profile.id}: {e}")

        logger.info(f"Role sync finished: {result.updated} of {result.total} updated")
        return result
