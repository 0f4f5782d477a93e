"""
FastAPI dependencies for authentication and authorization.

Dependency chain:

  get_current_user (JWT -> User)
      ├── require_permission(code)   (User -> User)  [STAFF with code, or ADMIN]
      └── require_fund_manager       (User -> User)  [ADMIN, or STAFF with fund.manage]

The authenticated User returned here is the explicit `actor` handed to every
ledger and privilege service call; there is no ambient "current user".
Services re-check the actor themselves, so these dependencies only reject
early with a clean 401/403.
"""

import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from league_ledger.database import get_db
from league_ledger.models.user import User
from league_ledger.permissions import Permission, can_manage_funds, has_permission
from league_ledger.security import decode_access_token


# Looks for "Authorization: Bearer <token>"; tokenUrl feeds Swagger UI.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Extract and validate the JWT token, then return the corresponding User.

    Raises:
        HTTPException 401: If the token is invalid or the user doesn't exist.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
        user_id_str: str | None = payload.get("sub")
        if user_id_str is None:
            raise credentials_exception
        user_id = uuid.UUID(user_id_str)
    except (JWTError, ValueError):
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise credentials_exception

    return user


def require_permission(required: Permission):
    """
    Build a dependency that requires `required` (ADMIN always passes).

    Usage:
        admin: User = Depends(require_permission(Permission.USER_VIEW))
    """

    async def dependency(user: User = Depends(get_current_user)) -> User:
        if not has_permission(user, required):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission {required.value} required",
            )
        return user

    return dependency


async def require_fund_manager(
    user: User = Depends(get_current_user),
) -> User:
    """Require an admin-capable finance actor (ADMIN, or STAFF with fund.manage)."""
    if not can_manage_funds(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Fund management access required",
        )
    return user
