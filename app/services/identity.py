# app/services/identity.py
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import requests
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.database import generate_uuid
from app.core.decorator import UpstreamError
from app.models.user import User
from app.schemas.user import ProviderUser

logger = logging.getLogger(__name__)


class IdentityProvider(ABC):
    """The accounts held by the authentication system."""

    @abstractmethod
    def list_users(self) -> List[ProviderUser]:
        ...

    @abstractmethod
    def create_user(
        self, email: str, password: str, name: Optional[str] = None
    ) -> ProviderUser:
        """Register a confirmed account and return it with its canonical id."""

    def get_user_by_email(self, email: str) -> Optional[ProviderUser]:
        email = email.strip().lower()
        for user in self.list_users():
            if user.email and user.email.lower() == email:
                return user
        return None


class SupabaseIdentityProvider(IdentityProvider):
    """Supabase Auth (GoTrue) admin API, authenticated with the service role key."""

    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        timeout: int = 10,
        page_size: int = 100,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_role_key = service_role_key
        self.timeout = timeout
        self.page_size = page_size
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        return {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
        }

    def _to_provider_user(self, raw: dict) -> ProviderUser:
        return ProviderUser(
            id=raw["id"],
            email=raw.get("email"),
            name=(raw.get("user_metadata") or {}).get("name"),
            role=(raw.get("app_metadata") or {}).get("role"),
            created_at=raw.get("created_at"),
            last_sign_in_at=raw.get("last_sign_in_at"),
        )

    def list_users(self) -> List[ProviderUser]:
        if not self.base_url or not self.service_role_key:
            raise UpstreamError("Identity provider is not configured")

        users: List[ProviderUser] = []
        page = 1
        while True:
            try:
                response = self.session.get(
                    f"{self.base_url}/auth/v1/admin/users",
                    params={"page": page, "per_page": self.page_size},
                    headers=self._headers(),
                    timeout=self.timeout,
                )
                response.raise_for_status()
            except requests.RequestException as e:
                logger.error(f"Failed to list identity provider users: {e}")
                raise UpstreamError(f"Failed to fetch auth users: {e}")

            batch = response.json().get("users") or []
            users.extend(self._to_provider_user(raw) for raw in batch)

            if len(batch) < self.page_size:
                break
            page += 1

        logger.info(f"Fetched {len(users)} users from identity provider")
        return users

    def create_user(
        self, email: str, password: str, name: Optional[str] = None
    ) -> ProviderUser:
        if not self.base_url or not self.service_role_key:
            raise UpstreamError("Identity provider is not configured")

        try:
            response = self.session.post(
                f"{self.base_url}/auth/v1/admin/users",
                json={
                    "email": email,
                    "password": password,
                    "email_confirm": True,
                    "user_metadata": {"name": name} if name else {},
                },
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Failed to create identity provider user {email}: {e}")
            raise UpstreamError(f"Auth error: {e}")

        return self._to_provider_user(response.json())


class LocalIdentityProvider(IdentityProvider):
    """Treats the local users table as the authority (single-database deployments)."""

    def __init__(self, db: Session):
        self.db = db

    def list_users(self) -> List[ProviderUser]:
        return [
            ProviderUser(
                id=u.id,
                email=u.email,
                name=u.name,
                role=u.role,
                created_at=u.created_at,
                last_sign_in_at=u.last_sign_in_at,
            )
            for u in self.db.query(User).order_by(User.created_at, User.id).all()
        ]

    def get_user_by_email(self, email: str) -> Optional[ProviderUser]:
        user = (
            self.db.query(User)
            .filter(func.lower(User.email) == email.strip().lower())
            .order_by(User.created_at, User.id)
            .first()
        )
        if not user:
            return None
        return ProviderUser(id=user.id, email=user.email, name=user.name, role=user.role)

    def create_user(
        self, email: str, password: str, name: Optional[str] = None
    ) -> ProviderUser:
        # Credentials live elsewhere; the caller writes the users row
        return ProviderUser(id=generate_uuid(), email=email, name=name)
