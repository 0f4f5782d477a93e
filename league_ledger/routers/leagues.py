"""
Leagues router — league-scoped ledger endpoints for any signed-in user.

Endpoints (require JWT):
  GET    /leagues/{league_id}                 — League details
  GET    /leagues/{league_id}/teams           — Teams of the league
  GET    /leagues/{league_id}/accounts        — Every account with balances
  GET    /leagues/{league_id}/my-account      — Caller's own account (opened on first call)
  GET    /leagues/{league_id}/transactions    — League ledger, newest first
  POST   /leagues/{league_id}/transactions    — Director transfer from own team account
  GET    /leagues/{league_id}/finance/stats   — Circulation, balances, flows

League finances are public to signed-in users; only account-level detail
under /accounts is restricted to owners and fund viewers.
"""

import uuid

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from league_ledger.database import get_db
from league_ledger.dependencies import get_current_user
from league_ledger.models.user import User
from league_ledger.schemas.account import AccountListResponse, AccountResponse
from league_ledger.schemas.finance import FinanceStatsResponse
from league_ledger.schemas.league import LeagueResponse, TeamResponse
from league_ledger.schemas.transaction import (
    TransactionPageResponse,
    TransactionResponse,
    TransferRequest,
)
from league_ledger.services import (
    account_service,
    league_service,
    stats_service,
    transaction_service,
)
from league_ledger.services.transaction_service import ActorClass

router = APIRouter()


@router.get(
    "/{league_id}",
    response_model=LeagueResponse,
    summary="Get league details",
)
async def get_league(
    league_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await league_service.get_league(db, league_id)


@router.get(
    "/{league_id}/teams",
    response_model=list[TeamResponse],
    summary="List teams",
)
async def list_teams(
    league_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await league_service.list_teams(db, league_id)


@router.get(
    "/{league_id}/accounts",
    response_model=AccountListResponse,
    summary="List league accounts",
)
async def list_accounts(
    league_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """System account first, then team accounts, then participant accounts."""
    accounts = await account_service.list_accounts(db, league_id)
    return AccountListResponse(
        accounts=[AccountResponse.model_validate(a) for a in accounts],
        total=len(accounts),
    )


@router.get(
    "/{league_id}/my-account",
    response_model=AccountResponse,
    summary="Get your personal account",
)
async def get_my_account(
    league_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    The caller's participant account in this league.

    Opened with a zero balance on the first request; every later call
    returns the same account. Returns 403 for non-participants.
    """
    return await league_service.get_my_account(db, user, league_id)


@router.get(
    "/{league_id}/transactions",
    response_model=TransactionPageResponse,
    summary="List league transactions",
)
async def list_transactions(
    league_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await transaction_service.list_league_transactions(
        db, league_id, page=page, limit=limit
    )


@router.post(
    "/{league_id}/transactions",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a transfer as team director",
)
async def create_director_transfer(
    league_id: uuid.UUID,
    request: TransferRequest,
    idempotency_key: str | None = Header(None, alias="Idempotency-Key", max_length=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Move currency out of the director's own team account.

    - **from_account_id**: Optional; must be a team account you direct
    - **to_account_id**: Any account in the league
    - **use_balance**: Must stay true; directors cannot issue currency

    The source balance may go negative. Confirm overdrafts with the user
    before submitting.
    """
    return await transaction_service.transfer(
        db,
        actor=user,
        actor_class=ActorClass.DIRECTOR,
        league_id=league_id,
        from_account_id=request.from_account_id,
        to_account_id=request.to_account_id,
        amount=request.amount,
        category=request.category,
        description=request.description,
        use_balance=request.use_balance,
        idempotency_key=idempotency_key,
    )


@router.get(
    "/{league_id}/finance/stats",
    response_model=FinanceStatsResponse,
    summary="League finance statistics",
)
async def get_finance_stats(
    league_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await stats_service.league_stats(db, league_id)
