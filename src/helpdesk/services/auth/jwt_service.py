"""JWT token service for authentication."""

import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

from jose import JWTError, jwt
from pydantic import BaseModel

from helpdesk.core.config import get_settings

logger = logging.getLogger(__name__)


class TokenPayload(BaseModel):
    """JWT token payload."""

    sub: str  # User id
    exp: datetime
    iat: datetime
    type: str = "access"
    roles: list[str] = []


class JWTService:
    """Service for creating and validating JWT access tokens.

    Tokens are issued by the identity service; this service only needs to
    verify them. ``create_access_token`` exists for tooling and tests.
    """

    def __init__(
        self,
        secret_key: str | None = None,
        algorithm: str | None = None,
        access_token_expire_minutes: int | None = None,
    ):
        """Initialize JWT service.

        @param secret_key - Secret key for signing tokens
        @param algorithm - JWT algorithm
        @param access_token_expire_minutes - Access token lifetime
        """
        settings = get_settings()
        self.secret_key = secret_key or settings.secret_key
        self.algorithm = algorithm or settings.jwt_algorithm
        self.access_token_expire_minutes = (
            access_token_expire_minutes or settings.access_token_expire_minutes
        )

    def create_access_token(
        self,
        subject: str,
        roles: list[str] | None = None,
        extra_claims: dict[str, Any] | None = None,
    ) -> str:
        """Create an access token.

        @param subject - User id
        @param roles - User roles
        @param extra_claims - Additional claims to include
        @returns Encoded JWT access token
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": subject,
            "exp": now + timedelta(minutes=self.access_token_expire_minutes),
            "iat": now,
            "type": "access",
            "roles": roles or [],
        }
        if extra_claims:
            payload.update(extra_claims)

        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify_access_token(self, token: str) -> TokenPayload | None:
        """Verify and decode an access token.

        @param token - JWT token to verify
        @returns TokenPayload if valid, None otherwise
        """
        try:
            payload = TokenPayload(
                **jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
            )
        except JWTError as e:
            logger.warning(f"JWT verification failed: {e}")
            return None

        if payload.type != "access":
            return None
        return payload


@lru_cache
def get_jwt_service() -> JWTService:
    """Get cached JWT service instance."""
    return JWTService()
