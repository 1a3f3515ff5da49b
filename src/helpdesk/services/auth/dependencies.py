"""Authentication dependencies for FastAPI."""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from helpdesk.services.auth.jwt_service import JWTService, get_jwt_service

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class AuthenticatedUser:
    """The user a request acts on behalf of.

    Roles come from the token and are informational; workflow decisions
    re-check capabilities against the user directory.
    """

    def __init__(self, user_id: int, roles: list[str] | None = None):
        self.user_id = user_id
        self.roles = roles or []

def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
    jwt_service: Annotated[JWTService, Depends(get_jwt_service)],
) -> AuthenticatedUser:
    """Get current authenticated user from JWT token.

    @param credentials - Bearer token from request
    @param jwt_service - JWT service for token verification
    @returns AuthenticatedUser if token is valid
    @raises HTTPException 401 if token is missing or invalid
    """
    if not credentials:
        raise _unauthorized("Not authenticated")

    payload = jwt_service.verify_access_token(credentials.credentials)
    if not payload:
        raise _unauthorized("Invalid or expired token")

    try:
        user_id = int(payload.sub)
    except ValueError:
        logger.warning(f"Token subject is not a user id: {payload.sub!r}")
        raise _unauthorized("Invalid token subject")

    return AuthenticatedUser(user_id=user_id, roles=payload.roles)


CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]
