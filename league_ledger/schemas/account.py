"""
Pydantic schemas for Account endpoints.

All amounts are signed integer currency units; balances may be negative.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel

from league_ledger.models.account import OwnerType
from league_ledger.schemas.finance import PeriodFlow
from league_ledger.schemas.transaction import TransactionResponse


class AccountResponse(BaseModel):
    """Public representation of a ledger account."""
    id: uuid.UUID
    league_id: uuid.UUID
    owner_type: OwnerType
    owner_id: uuid.UUID
    owner_name: str
    balance: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AccountListResponse(BaseModel):
    """Response body for GET /leagues/{id}/accounts."""
    accounts: list[AccountResponse]
    total: int


class BalanceResponse(BaseModel):
    """
    Balance check response — includes both cached and computed values.

    The `match` field tells whether the materialized balance agrees with the
    balance replayed from the transaction log. A mismatch indicates a data
    integrity issue.
    """
    account_id: uuid.UUID
    cached_balance: int
    computed_balance: int
    match: bool


class AccountTransactionsResponse(BaseModel):
    """Response body for GET /accounts/{id}/transactions."""
    account_id: uuid.UUID
    balance: int
    transactions: list[TransactionResponse]
    total: int
    page: int
    race_flow: list[PeriodFlow]
