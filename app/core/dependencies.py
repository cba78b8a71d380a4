import logging
from typing import Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.security import jwt_manager
from app.models.user import User
from app.services.identity import (
    IdentityProvider,
    LocalIdentityProvider,
    SupabaseIdentityProvider,
)

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _load_or_provision_user(db: Session, payload: dict) -> User:
    """
    Return the local row for the token subject, creating it on first use.
    The subject id is canonical, so the row is always keyed by it.
    """
    user_id = payload["sub"]
    user = db.query(User).filter(User.id == user_id).first()
    if user:
        return user

    user = User(id=user_id, email=payload.get("email"), role="user")
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Provisioned concurrently by another request
        db.rollback()
        return db.query(User).filter(User.id == user_id).one()

    db.refresh(user)
    logger.info(f"Provisioned local user record for {user_id}")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Dependency that requires a valid Bearer token and returns the acting user.
    Raises 401 Unauthorized if the token is missing or invalid.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = jwt_manager.verify_token(credentials.credentials)
    return _load_or_provision_user(db, payload)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """
    Dependency that returns a user if a valid token is provided, or None otherwise.
    """
    if not credentials:
        return None

    try:
        payload = jwt_manager.verify_token(credentials.credentials)
    except HTTPException:
        # Invalid tokens are treated as anonymous
        return None

    return _load_or_provision_user(db, payload)


async def get_current_admin(
    current_user: User = Depends(get_current_user),
) -> User:
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required"
        )
    return current_user


def get_identity_provider(db: Session = Depends(get_db)) -> IdentityProvider:
    """Select the identity provider implementation from configuration."""
    if settings.identity_provider == "local":
        return LocalIdentityProvider(db)
    return SupabaseIdentityProvider(
        base_url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
        timeout=settings.identity_timeout,
        page_size=settings.identity_page_size,
    )
