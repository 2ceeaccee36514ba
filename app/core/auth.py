"""Authentication dependencies for endpoints.

The middleware has already verified the token; these dependencies read the
user it attached and enforce role requirements.
"""

from typing import Callable, Iterable, Optional

from fastapi import Depends, HTTPException, Request, status

from app.core.config import settings
from app.schemas.auth import CurrentUser
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


async def get_current_user(request: Request) -> CurrentUser:
    """Get the authenticated user from the request state.

    Raises:
        HTTPException: 401 when the request carries no verified user
    """
    user = getattr(request.state, "user", None)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_roles(roles: Optional[Iterable[str]] = None) -> Callable:
    """Build a dependency that only admits users holding one of ``roles``.

    Args:
        roles: Allowed roles; defaults to ``AUTH_ADMIN_ROLES``

    Returns:
        FastAPI dependency returning the current user
    """
    allowed = {role.lower() for role in (roles or settings.admin_roles)}

    async def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role.lower() not in allowed:
            LOGGER.warning(
                f"User {user.id} with role {user.role} denied",
                extra={"user_id": user.id, "role": user.role, "allowed": sorted(allowed)},
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return dependency


require_admin = require_roles()
