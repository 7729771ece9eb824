"""FastAPI dependencies for authentication.

Provides dependency injection for:
- Current user extraction from JWT
- Role-based access control
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError
from pydantic import ValidationError

from src.auth.permissions import UserRole, has_permission
from src.auth.schemas import AuthenticatedUser
from src.auth.security import decode_access_token
from src.core.context import set_user_id


def get_token_from_header(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    expected_parts = 2
    parts = auth_header.split()
    if len(parts) != expected_parts or parts[0].lower() != "bearer":
        return None

    return parts[1]


async def get_current_user(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> AuthenticatedUser:
    """Get current authenticated user from JWT token.

    Raises:
        HTTPException(401): If token is missing, invalid, or expired
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token not provided",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_access_token(token)
        user = AuthenticatedUser(
            id=payload["sub"],
            email=payload.get("email", ""),
            role=payload["role"],
        )
    except (JWTError, ValidationError) as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    # Set user_id in context for logging
    set_user_id(user.id)
    return user


def require_role(*allowed_roles: UserRole):
    """Create dependency requiring specific role(s) (exact match)."""

    async def role_checker(
        user: Annotated[AuthenticatedUser, Depends(get_current_user)],
    ) -> AuthenticatedUser:
        if user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return role_checker


def require_permission(required_role: UserRole):
    """Create dependency requiring at least a permission level.

    Uses hierarchical comparison: ADMIN >= INSTRUCTOR >= STUDENT
    """

    async def permission_checker(
        user: Annotated[AuthenticatedUser, Depends(get_current_user)],
    ) -> AuthenticatedUser:
        if not has_permission(user.role, required_role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return permission_checker


# ==============================================================================
# Type Aliases for Cleaner Code
# ==============================================================================

CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]

# Learning endpoints are for students only; staff accounts are not enrolled
StudentUser = Annotated[AuthenticatedUser, Depends(require_role(UserRole.STUDENT))]
InstructorUser = Annotated[
    AuthenticatedUser, Depends(require_permission(UserRole.INSTRUCTOR))
]
