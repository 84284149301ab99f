"""
Authentication and Authorization Module

Provides authentication dependencies for FastAPI endpoints.
Bearer JWTs issued by /auth/login are validated with the helpers in
security.py; admin-only routes additionally require the platform_admin role.

SECURITY NOTE:
- Development mode auth bypass is ONLY enabled when PYTHON_ENV=development
- Production environments MUST set PYTHON_ENV=production to disable test tokens
"""

import logging
import os
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from timint.core.config import settings
from timint.core.security import decode_token

logger = logging.getLogger(__name__)

PLATFORM_ADMIN_ROLE = "platform_admin"

# Security scheme for OpenAPI documentation
security = HTTPBearer(
    auto_error=True,
    description="JWT Bearer token for authentication",
)


@dataclass
class AuthenticatedUser:
    """
    Represents an authenticated caller.

    Populated from JWT claims after token validation.

    Attributes:
        id: User's unique identifier (UUID)
        email: User's email address
        role: User's role ('platform_admin' or 'founder')
        name: User's display name (optional)
    """

    id: UUID
    email: str
    role: str
    name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == PLATFORM_ADMIN_ROLE

    def __str__(self) -> str:
        return f"AuthenticatedUser(id={self.id}, email={self.email}, role={self.role})"


def _is_dev_mode_safe() -> bool:
    """
    Check if development mode is safe to enable.

    Requires PYTHON_ENV=development in settings and in the raw environment,
    and that neither says production or staging.
    """
    env_var = os.getenv("PYTHON_ENV", "").lower()

    is_safe = (
        settings.is_development
        and not settings.is_production
        and env_var != "production"
        and env_var != "staging"
    )

    if is_safe:
        logger.warning(
            "SECURITY: Development auth mode is ENABLED. This MUST NOT be used in production!"
        )

    return is_safe


# Development mode flag - allows mock authentication for LOCAL testing ONLY
_DEVELOPMENT_MODE = _is_dev_mode_safe()

_DEV_ADMIN = AuthenticatedUser(
    id=UUID("00000000-0000-0000-0000-000000000001"),
    email="admin@timint.dev",
    role=PLATFORM_ADMIN_ROLE,
    name="Development Admin",
)


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _validate_jwt_token(token: str) -> AuthenticatedUser:
    """
    Validate JWT token and extract user claims.

    Args:
        token: JWT token string from Authorization header

    Returns:
        AuthenticatedUser built from the token claims

    Raises:
        HTTPException 401: If token is invalid, expired or not an access token
    """
    if _DEVELOPMENT_MODE and token in ["dev-token", "test-token"]:
        logger.debug("Development mode: Using test token")
        return _DEV_ADMIN

    payload = decode_token(token)

    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    token_type = payload.get("type", "access")
    if token_type != "access":
        logger.warning(f"Invalid token type: {token_type}")
        raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    try:
        user_id_str = payload.get("sub")
        if not user_id_str:
            raise ValueError("Missing 'sub' claim in token")

        return AuthenticatedUser(
            id=UUID(user_id_str),
            email=payload.get("email", ""),
            role=payload.get("role", ""),
            name=payload.get("name"),
        )
    except (ValueError, KeyError) as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> AuthenticatedUser:
    """FastAPI dependency returning the authenticated caller (any role)."""
    return await _validate_jwt_token(credentials.credentials)


async def get_current_admin_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> AuthenticatedUser:
    """
    FastAPI dependency that validates the JWT token and returns the admin user.

    Usage:
        @router.post("/admin/endpoint")
        async def admin_endpoint(
            admin: AuthenticatedUser = Depends(get_current_admin_user)
        ):
            ...

    Raises:
        HTTPException 401: If token is missing, invalid, or expired
        HTTPException 403: If user is not a platform admin
    """
    user = await _validate_jwt_token(credentials.credentials)

    if not user.is_admin:
        logger.warning(
            f"Access denied: User {user.id} ({user.email}) has role '{user.role}', "
            f"but '{PLATFORM_ADMIN_ROLE}' is required"
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "ADMIN_ACCESS_REQUIRED",
                "message": "Platform admin access is required for this endpoint.",
            },
        )

    logger.debug(f"Authenticated admin: {user.id} ({user.email})")
    return user


__all__ = [
    "PLATFORM_ADMIN_ROLE",
    "AuthenticatedUser",
    "get_current_user",
    "get_current_admin_user",
]
