"""
Account service — the AccountStore.

This module owns Account records:
  - Lookup by id, listing per league
  - Idempotent creation keyed by (league_id, owner_type, owner_id)
  - The per-league system ("FIA") account
  - Balance verification (materialized balance vs. replay of the log)

Idempotent creation:
  get_or_create_for_owner() never fails on a duplicate. It issues
  INSERT ... ON CONFLICT DO NOTHING against the unique
  (league_id, owner_type, owner_id) constraint and then reads the row back,
  so two requests racing to create the same participant account both end
  up with the single row that won.

Balances are never written here. The transaction service is the only
writer of Account.balance.
"""

import uuid

import structlog
from sqlalchemy import select, func, case
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from league_ledger.config import settings
from league_ledger.exceptions import (
    AccountNotFoundError,
    ForbiddenError,
    LeagueNotFoundError,
)
from league_ledger.models.account import Account, OwnerType
from league_ledger.models.league import League
from league_ledger.models.participant import Participant
from league_ledger.models.transaction import Transaction
from league_ledger.models.user import User
from league_ledger.permissions import Permission, has_permission

log = structlog.get_logger(__name__)

_OWNER_KEY = ["league_id", "owner_type", "owner_id"]


def system_owner_id(league_id: uuid.UUID) -> uuid.UUID:
    """Deterministic owner id of a league's system account."""
    return uuid.uuid5(uuid.NAMESPACE_OID, f"system-{league_id}")


async def require_league(db: AsyncSession, league_id: uuid.UUID) -> League:
    league = await db.get(League, league_id)
    if league is None:
        raise LeagueNotFoundError(league_id)
    return league


async def get_account(db: AsyncSession, account_id: uuid.UUID) -> Account:
    """
    Get a single account.

    Raises:
        AccountNotFoundError: If the account doesn't exist.
    """
    result = await db.execute(select(Account).where(Account.id == account_id))
    account = result.scalar_one_or_none()

    if account is None:
        raise AccountNotFoundError(account_id)

    return account


async def get_by_owner(
    db: AsyncSession,
    league_id: uuid.UUID,
    owner_type: OwnerType,
    owner_id: uuid.UUID,
) -> Account | None:
    result = await db.execute(
        select(Account)
        .where(Account.league_id == league_id)
        .where(Account.owner_type == owner_type)
        .where(Account.owner_id == owner_id)
    )
    return result.scalar_one_or_none()


async def get_or_create_for_owner(
    db: AsyncSession,
    league_id: uuid.UUID,
    owner_type: OwnerType,
    owner_id: uuid.UUID,
    owner_name: str = "",
) -> Account:
    """
    Return the owner's account in the league, creating it on first use.

    Creation starts at balance 0. Calling this any number of times, from any
    number of concurrent requests, yields the same single account.
    """
    account, _ = await _get_or_create(db, league_id, owner_type, owner_id, owner_name)
    return account


async def _get_or_create(
    db: AsyncSession,
    league_id: uuid.UUID,
    owner_type: OwnerType,
    owner_id: uuid.UUID,
    owner_name: str,
) -> tuple[Account, bool]:
    """Returns (account, created); created is True only when this call inserted the row."""
    existing = await get_by_owner(db, league_id, owner_type, owner_id)
    if existing is not None:
        return existing, False

    values = {
        "id": uuid.uuid4(),
        "league_id": league_id,
        "owner_type": owner_type,
        "owner_id": owner_id,
        "owner_name": owner_name,
        "balance": 0,
    }

    dialect_name = db.get_bind().dialect.name
    if dialect_name == "postgresql":
        stmt = postgresql.insert(Account).values(**values)
    elif dialect_name == "sqlite":
        stmt = sqlite.insert(Account).values(**values)
    else:
        stmt = None

    if stmt is not None:
        await db.execute(stmt.on_conflict_do_nothing(index_elements=_OWNER_KEY))
    else:
        db.add(Account(**values))
        await db.flush()

    account = await get_by_owner(db, league_id, owner_type, owner_id)
    created = account.id == values["id"]
    if created:
        log.info(
            "account_created",
            account_id=str(account.id),
            league_id=str(league_id),
            owner_type=owner_type.value,
            owner_id=str(owner_id),
        )
    return account, created


async def ensure_system_account(db: AsyncSession, league_id: uuid.UUID) -> Account:
    """Create (or return) the league's single system account."""
    account, created = await _get_or_create(
        db,
        league_id,
        OwnerType.SYSTEM,
        system_owner_id(league_id),
        settings.SYSTEM_ACCOUNT_NAME,
    )
    if created:
        log.info("system_account_created", league_id=str(league_id), account_id=str(account.id))
    return account


async def get_system_account(db: AsyncSession, league_id: uuid.UUID) -> Account:
    result = await db.execute(
        select(Account)
        .where(Account.league_id == league_id)
        .where(Account.owner_type == OwnerType.SYSTEM)
    )
    account = result.scalar_one_or_none()
    if account is None:
        # Every league gets its system account at creation time
        raise AccountNotFoundError(system_owner_id(league_id))
    return account


async def list_accounts(db: AsyncSession, league_id: uuid.UUID) -> list[Account]:
    """List a league's accounts: system first, then teams, then participants."""
    await require_league(db, league_id)

    type_order = case(
        (Account.owner_type == OwnerType.SYSTEM, 0),
        (Account.owner_type == OwnerType.TEAM, 1),
        else_=2,
    )
    result = await db.execute(
        select(Account)
        .where(Account.league_id == league_id)
        .order_by(type_order, Account.created_at, Account.owner_name)
    )
    return list(result.scalars().all())


async def compute_balance_from_log(db: AsyncSession, account_id: uuid.UUID) -> int:
    """
    Replay the transaction log for one account.

    Credits always add. Debits subtract unless the transaction was an
    issuance, which never touched the source balance.
    """
    credit_result = await db.execute(
        select(func.coalesce(func.sum(Transaction.amount), 0))
        .where(Transaction.to_account_id == account_id)
    )
    total_credits = credit_result.scalar()

    debit_result = await db.execute(
        select(func.coalesce(func.sum(Transaction.amount), 0))
        .where(Transaction.from_account_id == account_id)
        .where(Transaction.is_issuance.is_(False))
    )
    total_debits = debit_result.scalar()

    return total_credits - total_debits


async def get_balance(db: AsyncSession, account_id: uuid.UUID) -> dict:
    """
    Get the materialized balance next to the balance replayed from the log.

    A mismatch signals a data integrity problem.
    """
    account = await get_account(db, account_id)
    computed = await compute_balance_from_log(db, account_id)

    return {
        "account_id": account.id,
        "cached_balance": account.balance,
        "computed_balance": computed,
        "match": account.balance == computed,
    }


async def check_view_access(db: AsyncSession, actor: User, account: Account) -> None:
    """
    Allow fund viewers, the participant who owns the account, and directors
    of the team that owns it.

    Raises:
        ForbiddenError: If none of those apply.
    """
    if has_permission(actor, Permission.FUND_VIEW):
        return

    result = await db.execute(
        select(Participant)
        .where(Participant.league_id == account.league_id)
        .where(Participant.user_id == actor.id)
    )
    participant = result.scalar_one_or_none()

    if participant is not None:
        if account.owner_type == OwnerType.PARTICIPANT and account.owner_id == participant.id:
            return
        if (
            account.owner_type == OwnerType.TEAM
            and participant.is_director
            and account.owner_id == participant.team_id
        ):
            return

    raise ForbiddenError("You do not have access to this account")
