"""Authentication services."""

from helpdesk.services.auth.dependencies import (
    AuthenticatedUser,
    CurrentUser,
    get_current_user,
)
from helpdesk.services.auth.jwt_service import JWTService, TokenPayload, get_jwt_service

__all__ = [
    "AuthenticatedUser",
    "CurrentUser",
    "get_current_user",
    "JWTService",
    "TokenPayload",
    "get_jwt_service",
]
