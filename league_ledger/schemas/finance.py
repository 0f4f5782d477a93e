"""
Pydantic schemas for finance statistics and audits.

Everything here is derived on request and never stored.
"""

import uuid

from pydantic import BaseModel

from league_ledger.models.account import OwnerType


class PeriodFlow(BaseModel):
    """Income and expense within one period ("PRE" or "R{round}")."""
    period: str
    income: int
    expense: int


class TeamBalance(BaseModel):
    account_id: uuid.UUID
    team_id: uuid.UUID
    team_name: str
    team_color: str
    balance: int


class TeamRaceFlow(BaseModel):
    team_id: uuid.UUID
    team_name: str
    team_color: str
    flows: list[PeriodFlow]


class FinanceStatsResponse(BaseModel):
    """Response body for GET /leagues/{id}/finance/stats."""
    league_id: uuid.UUID
    total_circulation: int
    system_balance: int
    team_balances: list[TeamBalance]
    category_totals: dict[str, int]
    race_flow: list[PeriodFlow]
    team_race_flows: list[TeamRaceFlow]


class AccountAudit(BaseModel):
    account_id: uuid.UUID
    owner_type: OwnerType
    owner_name: str
    cached_balance: int
    computed_balance: int
    match: bool


class FinanceAuditResponse(BaseModel):
    """Response body for GET /admin/leagues/{id}/finance/audit."""
    league_id: uuid.UUID
    transaction_count: int
    accounts: list[AccountAudit]
    circulation_from_balances: int
    circulation_from_log: int
    consistent: bool
