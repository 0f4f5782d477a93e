"""
Stats service — the StatsAggregator.

Read-only projections over accounts and the transaction log:

  league_stats()   total circulation, team balances, category totals,
                   league flow series and one flow series per team
  account_stats()  balance, a page of transactions and the account's flow
  audit_league()   full replay of the log against the cached balances

Circulation:
  total_circulation is the sum of every non-system account balance, read
  from the materialized Account.balance. Conserving transfers between
  non-system accounts cancel out; only movements across the system account
  boundary change it.

Flow series:
  Each transaction is attributed to the latest completed match of its
  league whose match_date is on or before the transaction's date, labelled
  "R{round}". Earlier transactions fall in a leading "PRE" bucket.

  League scope counts only flow across the system account boundary:
    income  = amounts moved from the system account to any other account
    expense = amounts moved into the system account
  Account scope counts everything touching the account:
    income  = amounts credited to it
    expense = amounts debited from it (issuance never debits)

  With those conventions, summing (income - expense) over every non-system
  account gives the league series bucket by bucket, and the league series
  summed over all buckets equals total_circulation.
"""

import uuid
from datetime import date, datetime

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from league_ledger.models.account import Account, OwnerType
from league_ledger.models.match import Match, MatchStatus
from league_ledger.models.team import Team
from league_ledger.models.transaction import Transaction, TransactionCategory
from league_ledger.services import account_service, transaction_service

PRE_SEASON_PERIOD = "PRE"
DEFAULT_TEAM_COLOR = "#3B82F6"


# ---------------------------------------------------------------------------
# Period bucketing
# ---------------------------------------------------------------------------

async def _completed_periods(db: AsyncSession, league_id: uuid.UUID) -> list[tuple[date, str]]:
    result = await db.execute(
        select(Match.match_date, Match.round)
        .where(Match.league_id == league_id)
        .where(Match.status == MatchStatus.COMPLETED)
        .order_by(Match.match_date, Match.round)
    )
    return [(match_date, f"R{round_}") for match_date, round_ in result.all()]


def _period_for(created_at: datetime, periods: list[tuple[date, str]]) -> str:
    """Label of the latest completed round on or before the transaction date."""
    label = PRE_SEASON_PERIOD
    tx_date = created_at.date()
    for match_date, period in periods:
        if match_date > tx_date:
            break
        label = period
    return label


def _labels(rows, periods: list[tuple[date, str]]) -> list[str]:
    """
    Chronological bucket labels shared by every series of a league.

    PRE only appears when some transaction predates the first completed round.
    """
    labels = [period for _, period in periods]
    if any(_period_for(row.created_at, periods) == PRE_SEASON_PERIOD for row in rows):
        labels.insert(0, PRE_SEASON_PERIOD)
    return labels


def _empty_flow(labels: list[str]) -> dict[str, dict]:
    return {label: {"period": label, "income": 0, "expense": 0} for label in labels}


async def _league_log(db: AsyncSession, league_id: uuid.UUID) -> list:
    result = await db.execute(
        select(
            Transaction.from_account_id,
            Transaction.to_account_id,
            Transaction.amount,
            Transaction.is_issuance,
            Transaction.created_at,
        )
        .where(Transaction.league_id == league_id)
        .order_by(Transaction.created_at, Transaction.id)
    )
    return result.all()


def _account_flow(rows, account_id: uuid.UUID, periods: list[tuple[date, str]]) -> list[dict]:
    flow = _empty_flow(_labels(rows, periods))
    for from_id, to_id, amount, is_issuance, created_at in rows:
        bucket = flow[_period_for(created_at, periods)]
        if to_id == account_id:
            bucket["income"] += amount
        if from_id == account_id and not is_issuance:
            bucket["expense"] += amount
    return list(flow.values())


def _league_flow(rows, system_id: uuid.UUID, periods: list[tuple[date, str]]) -> list[dict]:
    flow = _empty_flow(_labels(rows, periods))
    for from_id, to_id, amount, _, created_at in rows:
        bucket = flow[_period_for(created_at, periods)]
        if from_id == system_id:
            bucket["income"] += amount
        elif to_id == system_id:
            bucket["expense"] += amount
    return list(flow.values())


# ---------------------------------------------------------------------------
# League stats
# ---------------------------------------------------------------------------

async def league_stats(db: AsyncSession, league_id: uuid.UUID) -> dict:
    """
    FinanceStats for a whole league.

    Raises:
        LeagueNotFoundError: If the league doesn't exist.
    """
    accounts = await account_service.list_accounts(db, league_id)
    system = next((a for a in accounts if a.owner_type == OwnerType.SYSTEM), None)
    if system is None:
        system = await account_service.get_system_account(db, league_id)

    total_circulation = sum(a.balance for a in accounts if a.owner_type != OwnerType.SYSTEM)

    team_result = await db.execute(
        select(Account, Team)
        .join(Team, Account.owner_id == Team.id)
        .where(Account.league_id == league_id)
        .where(Account.owner_type == OwnerType.TEAM)
        .order_by(Account.balance.desc(), Team.name)
    )
    teams = team_result.all()

    category_totals = {category.value: 0 for category in TransactionCategory}
    category_result = await db.execute(
        select(Transaction.category, func.coalesce(func.sum(Transaction.amount), 0))
        .where(Transaction.league_id == league_id)
        .group_by(Transaction.category)
    )
    for category, total in category_result.all():
        category_totals[category.value] = total

    periods = await _completed_periods(db, league_id)
    rows = await _league_log(db, league_id)

    return {
        "league_id": league_id,
        "total_circulation": total_circulation,
        "system_balance": system.balance,
        "team_balances": [
            {
                "account_id": account.id,
                "team_id": team.id,
                "team_name": team.name,
                "team_color": team.color or DEFAULT_TEAM_COLOR,
                "balance": account.balance,
            }
            for account, team in teams
        ],
        "category_totals": category_totals,
        "race_flow": _league_flow(rows, system.id, periods),
        "team_race_flows": [
            {
                "team_id": team.id,
                "team_name": team.name,
                "team_color": team.color or DEFAULT_TEAM_COLOR,
                "flows": _account_flow(rows, account.id, periods),
            }
            for account, team in teams
        ],
    }


# ---------------------------------------------------------------------------
# Account stats
# ---------------------------------------------------------------------------

async def account_stats(
    db: AsyncSession,
    account_id: uuid.UUID,
    page: int = 1,
    limit: int = 20,
) -> dict:
    """
    Balance, a page of transactions and the flow series of one account.

    Raises:
        AccountNotFoundError: If the account doesn't exist.
    """
    account = await account_service.get_account(db, account_id)

    total_result = await db.execute(
        select(func.count(Transaction.id)).where(
            (Transaction.from_account_id == account_id)
            | (Transaction.to_account_id == account_id)
        )
    )
    total = total_result.scalar()

    transactions = await transaction_service.list_account_transactions(
        db, account_id, limit=limit, offset=(page - 1) * limit
    )

    periods = await _completed_periods(db, account.league_id)
    rows = await _league_log(db, account.league_id)

    return {
        "account_id": account.id,
        "balance": account.balance,
        "transactions": transactions,
        "total": total,
        "page": page,
        "race_flow": _account_flow(rows, account.id, periods),
    }


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------

async def audit_league(db: AsyncSession, league_id: uuid.UUID) -> dict:
    """
    Recompute every balance of a league from scratch and compare.

    The log-side circulation counts every amount that crossed the system
    account boundary; it must equal the sum of non-system cached balances.
    """
    accounts = await account_service.list_accounts(db, league_id)
    rows = await _league_log(db, league_id)
    system_ids = {a.id for a in accounts if a.owner_type == OwnerType.SYSTEM}

    computed = {a.id: 0 for a in accounts}
    circulation_from_log = 0
    for from_id, to_id, amount, is_issuance, _ in rows:
        computed[to_id] = computed.get(to_id, 0) + amount
        if not is_issuance:
            computed[from_id] = computed.get(from_id, 0) - amount
        if from_id in system_ids and to_id not in system_ids:
            circulation_from_log += amount
        elif to_id in system_ids and from_id not in system_ids:
            circulation_from_log -= amount

    account_reports = [
        {
            "account_id": a.id,
            "owner_type": a.owner_type,
            "owner_name": a.owner_name,
            "cached_balance": a.balance,
            "computed_balance": computed[a.id],
            "match": a.balance == computed[a.id],
        }
        for a in accounts
    ]
    circulation_from_balances = sum(
        a.balance for a in accounts if a.owner_type != OwnerType.SYSTEM
    )

    return {
        "league_id": league_id,
        "transaction_count": len(rows),
        "accounts": account_reports,
        "circulation_from_balances": circulation_from_balances,
        "circulation_from_log": circulation_from_log,
        "consistent": (
            all(report["match"] for report in account_reports)
            and circulation_from_balances == circulation_from_log
        ),
    }
