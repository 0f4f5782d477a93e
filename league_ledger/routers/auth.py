"""
Authentication router — signup and login endpoints.

These are the only public (unauthenticated) endpoints in the API.
Everything else requires a valid JWT token.

Endpoints:
  POST /auth/signup  — Register a new user and get a token
  POST /auth/login   — Authenticate and get a token

Plaintext passwords exist only in memory during request processing; they
are hashed before any database operation and never logged.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from league_ledger.database import get_db
from league_ledger.schemas.auth import (
    UserSignupRequest,
    UserLoginRequest,
    TokenResponse,
    SignupResponse,
)
from league_ledger.services import auth_service

router = APIRouter()


@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def signup(
    request: UserSignupRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Register a new user with role USER.

    - **email**: Must be a valid email format and not already registered
    - **password**: Minimum 8 characters
    - **nickname**: Display name, shown on participant accounts
    """
    user, token = await auth_service.signup(
        db=db,
        email=request.email,
        password=request.password,
        nickname=request.nickname,
    )

    return SignupResponse(
        user_id=user.id,
        email=user.email,
        role=user.role.value,
        token=token,
    )


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Authenticate and get a token",
)
async def login(
    request: UserLoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Authenticate with email and password.

    Include the returned token in the Authorization header of every
    subsequent request:

        Authorization: Bearer <token>
    """
    _, token = await auth_service.login(
        db=db,
        email=request.email,
        password=request.password,
    )

    return TokenResponse(token=token)
