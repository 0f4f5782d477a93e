"""
Authentication service — signup and login business logic.

Signup flow:
  1. Check if email is already registered
  2. Hash the password with Argon2id
  3. Create the User with role USER, no permissions, version 1
  4. Return a JWT token so the user is immediately logged in

Login flow:
  1. Look up user by email
  2. Verify password against stored hash
  3. Return a JWT token

Nobody can sign up into STAFF or ADMIN. Elevated roles are granted through
privilege_service (or demo/promote_admin.py for the very first admin).
"""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from league_ledger.exceptions import DuplicateEmailError, InvalidCredentialsError
from league_ledger.models.user import User, Role
from league_ledger.security import hash_password, verify_password, create_access_token

log = structlog.get_logger(__name__)


async def signup(
    db: AsyncSession,
    email: str,
    password: str,
    nickname: str,
) -> tuple[User, str]:
    """
    Register a new user.

    Returns:
        Tuple of (User instance, JWT token string).

    Raises:
        DuplicateEmailError: If the email is already registered.
    """
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise DuplicateEmailError(email)

    user = User(
        email=email,
        hashed_password=hash_password(password),
        nickname=nickname,
        role=Role.USER,
        permissions=[],
        version=1,
    )
    db.add(user)
    await db.flush()

    log.info("user_signed_up", user_id=str(user.id))

    # "sub" (subject) is the standard claim for user identity
    token = create_access_token(data={"sub": str(user.id)})
    return user, token


async def login(
    db: AsyncSession,
    email: str,
    password: str,
) -> tuple[User, str]:
    """
    Authenticate a user and return a JWT token.

    Returns the same error for "wrong password" and "email not found" so
    valid emails cannot be enumerated.

    Raises:
        InvalidCredentialsError: If email doesn't exist or password is wrong.
    """
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    if not user:
        raise InvalidCredentialsError()

    if not verify_password(password, user.hashed_password):
        raise InvalidCredentialsError()

    if not user.is_active:
        raise InvalidCredentialsError()

    token = create_access_token(data={"sub": str(user.id)})
    return user, token
