# core/security.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from jose import JWTError, jwt

from app.core.config import settings

logger = logging.getLogger(__name__)


class JWTManager:
    """
    Verifies access tokens issued by the identity provider (Supabase Auth).
    Tokens are HS256-signed with the project JWT secret; `sub` is the
    canonical user id.
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
    ):
        self.secret_key = secret_key or settings.jwt_secret
        self.algorithm = algorithm or settings.jwt_algorithm
        self.audience = audience or settings.jwt_audience
        self.issuer = issuer if issuer is not None else settings.jwt_issuer

    def verify_token(self, token: str) -> Dict[str, Any]:
        """
        Verify and decode a bearer token.
        Raises 401 if the signature, expiry, audience or subject is invalid.
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer or None,
                options={"verify_exp": True},
            )
        except JWTError as e:
            logger.warning(f"JWT verification failed: {e}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired token",
                headers={"WWW-Authenticate": "Bearer"},
            )

        if not payload.get("sub"):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token: missing subject",
                headers={"WWW-Authenticate": "Bearer"},
            )

        return payload

    def create_access_token(
        self,
        user_id: str,
        email: Optional[str] = None,
        expires_in: Optional[timedelta] = None,
    ) -> str:
        """
        Mint a token in the identity provider's format.
        Used by the `dev-token` CLI command and by tests; production tokens
        come from the provider.
        """
        now = datetime.now(timezone.utc)
        expire = now + (
            expires_in or timedelta(minutes=settings.jwt_dev_token_expiration)
        )
        payload = {
            "sub": user_id,
            "email": email,
            "aud": self.audience,
            "role": "authenticated",
            "iat": int(now.timestamp()),
            "exp": int(expire.timestamp()),
        }
        if self.issuer:
            payload["iss"] = self.issuer

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        logger.info(f"Access token created for user: {user_id}")
        return token


# Global instance
jwt_manager = JWTManager()
