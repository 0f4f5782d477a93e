"""
Custom exception classes and FastAPI exception handlers.

The service layer raises these domain errors without importing any HTTP
concepts; register_exception_handlers() translates them into consistent
JSON responses of the form {"detail": ..., "error_type": ...}.

Exception hierarchy:
    LedgerAPIError (base)
    ├── NotFoundError               — unknown account/league/user/team/match
    │   ├── AccountNotFoundError
    │   ├── LeagueNotFoundError
    │   ├── UserNotFoundError
    │   ├── TeamNotFoundError
    │   └── MatchNotFoundError
    ├── ForbiddenError              — authorization policy violation
    ├── InvalidInputError           — bad amount, same account, bad category/role
    ├── VersionConflictError        — stale optimistic-concurrency token
    ├── LastAdminError              — would remove the last administrator
    ├── ConflictError               — storage contention after retries exhausted
    │   └── IdempotencyKeyReusedError
    ├── DuplicateEmailError
    └── InvalidCredentialsError

None of these are retried or compensated automatically; the caller re-reads
current state and decides whether to resubmit.
"""

import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class LedgerAPIError(Exception):
    """Base exception for all League Ledger domain errors."""

    status_code = 400
    error_type = "error"

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)

    def extra_content(self) -> dict:
        """Additional response fields for subclasses that carry context."""
        return {}


# ---------------------------------------------------------------------------
# Lookup failures
# ---------------------------------------------------------------------------

class NotFoundError(LedgerAPIError):
    status_code = 404
    error_type = "not_found"


class AccountNotFoundError(NotFoundError):
    """Raised when an account id does not resolve."""

    def __init__(self, account_id: uuid.UUID):
        self.account_id = account_id
        super().__init__(f"Account {account_id} not found")


class LeagueNotFoundError(NotFoundError):
    def __init__(self, league_id: uuid.UUID):
        self.league_id = league_id
        super().__init__(f"League {league_id} not found")


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: uuid.UUID):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class TeamNotFoundError(NotFoundError):
    def __init__(self, team_id: uuid.UUID):
        self.team_id = team_id
        super().__init__(f"Team {team_id} not found")


class MatchNotFoundError(NotFoundError):
    def __init__(self, match_id: uuid.UUID):
        self.match_id = match_id
        super().__init__(f"Match {match_id} not found")


# ---------------------------------------------------------------------------
# Policy and validation failures
# ---------------------------------------------------------------------------

class ForbiddenError(LedgerAPIError):
    """Raised when the actor is not allowed to perform the operation."""

    status_code = 403
    error_type = "forbidden"

    def __init__(self, detail: str = "You are not allowed to perform this action"):
        super().__init__(detail)


class InvalidInputError(LedgerAPIError):
    """Raised for requests that can never succeed as submitted."""

    status_code = 422
    error_type = "invalid_input"


class VersionConflictError(LedgerAPIError):
    """
    Raised when the caller's version token no longer matches the stored one.

    Attributes:
        expected_version: The version the caller last observed.
        current_version: The version currently stored (None if unknown).
    """

    status_code = 409
    error_type = "version_conflict"

    def __init__(self, expected_version: int, current_version: int | None = None):
        self.expected_version = expected_version
        self.current_version = current_version
        super().__init__(
            "The user was modified by someone else. Reload and try again."
        )

    def extra_content(self) -> dict:
        return {
            "expected_version": self.expected_version,
            "current_version": self.current_version,
        }


class LastAdminError(LedgerAPIError):
    """Raised when a change would leave the system without an administrator."""

    status_code = 409
    error_type = "last_admin"

    def __init__(self, user_id: uuid.UUID):
        self.user_id = user_id
        super().__init__("The last administrator cannot change role")


class ConflictError(LedgerAPIError):
    """Raised when storage contention outlasts the internal retry budget."""

    status_code = 409
    error_type = "conflict"

    def __init__(self, detail: str = "Concurrent update conflict, please retry"):
        super().__init__(detail)


class IdempotencyKeyReusedError(ConflictError):
    """Raised when an idempotency key is replayed with a different payload."""

    error_type = "idempotency_key_reused"

    def __init__(self, idempotency_key: str):
        self.idempotency_key = idempotency_key
        super().__init__(
            f"Idempotency key {idempotency_key!r} was already used for a different transfer"
        )


# ---------------------------------------------------------------------------
# Authentication failures
# ---------------------------------------------------------------------------

class DuplicateEmailError(LedgerAPIError):
    """Raised when attempting to register with an email that's already in use."""

    status_code = 409
    error_type = "duplicate_email"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Email {email} is already registered")


class InvalidCredentialsError(LedgerAPIError):
    """Raised when login credentials are incorrect."""

    status_code = 401
    error_type = "invalid_credentials"

    def __init__(self):
        super().__init__("Invalid email or password")


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register the domain exception handler with the FastAPI application.

    One handler covers the whole hierarchy: each subclass declares its own
    status_code and error_type, and may add context via extra_content().
    """

    @app.exception_handler(LedgerAPIError)
    async def ledger_error_handler(
        request: Request, exc: LedgerAPIError
    ) -> JSONResponse:
        content = {"detail": exc.detail, "error_type": exc.error_type}
        content.update(exc.extra_content())
        return JSONResponse(status_code=exc.status_code, content=content)
