"""
Accounts router — single-account endpoints.

Endpoints (require JWT; owner, director of the owning team, or fund.view):
  GET    /accounts/{account_id}               — Account details
  GET    /accounts/{account_id}/balance       — Cached vs. replayed balance
  GET    /accounts/{account_id}/transactions  — Balance, transactions and flow
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from league_ledger.database import get_db
from league_ledger.dependencies import get_current_user
from league_ledger.models.user import User
from league_ledger.schemas.account import (
    AccountResponse,
    AccountTransactionsResponse,
    BalanceResponse,
)
from league_ledger.services import account_service, stats_service

router = APIRouter()


@router.get(
    "/{account_id}",
    response_model=AccountResponse,
    summary="Get account details",
)
async def get_account(
    account_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Returns 403 without access to the account, 404 if it doesn't exist."""
    account = await account_service.get_account(db, account_id)
    await account_service.check_view_access(db, user, account)
    return account


@router.get(
    "/{account_id}/balance",
    response_model=BalanceResponse,
    summary="Check account balance",
)
async def get_balance(
    account_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Get the account balance — both cached and replayed from transactions.

    A `match` of false indicates a data integrity issue that needs
    investigation.
    """
    account = await account_service.get_account(db, account_id)
    await account_service.check_view_access(db, user, account)
    return await account_service.get_balance(db, account_id)


@router.get(
    "/{account_id}/transactions",
    response_model=AccountTransactionsResponse,
    summary="Account transactions and flow",
)
async def get_account_transactions(
    account_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    account = await account_service.get_account(db, account_id)
    await account_service.check_view_access(db, user, account)
    return await stats_service.account_stats(db, account_id, page=page, limit=limit)
