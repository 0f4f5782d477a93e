"""
Transaction service — the TransactionEngine.

THIS IS THE MOST CRITICAL FILE IN THE PROJECT. It handles:
  - Authorizing a transfer for one of two actor classes (admin, director)
  - Validating amount, accounts and issuance mode before any write
  - Applying the balance change and appending the Transaction atomically
  - Bounded retries on storage contention, then ConflictError
  - Idempotency keys, so an ambiguous client retry cannot apply twice
  - Ledger listings with account names

Transfer modes:
  conserving: from.balance -= amount; to.balance += amount
  issuance:   to.balance += amount only. Allowed solely when the source is
              the league's system account and an admin passes
              use_balance=False.

  There is no balance floor. A transfer that drives an account negative is
  applied; confirming the overdraft with a human is the caller's job.

Atomicity:
  The balance updates and the Transaction insert are flushed in the same
  database transaction and committed together by transfer() itself, so a
  failure at any step leaves no partial effect. transfer() owns its unit of
  work because contention can only be retried by rolling the whole unit
  back and running it again.

Deadlock prevention:
  Both accounts are locked (SELECT ... FOR UPDATE) in sorted id order, so
  transfers A->B and B->A always take their locks in the same order.

Lost updates:
  Balances are written as SQL expressions (balance = balance - :amount)
  rather than Python read-modify-write, so the database applies each delta
  against the committed value even where FOR UPDATE is a no-op (SQLite).
"""

import asyncio
import enum
import math
import uuid

import structlog
from sqlalchemy import select, func, or_
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from league_ledger.config import settings
from league_ledger.exceptions import (
    AccountNotFoundError,
    ConflictError,
    ForbiddenError,
    IdempotencyKeyReusedError,
    InvalidInputError,
)
from league_ledger.models.account import Account, OwnerType
from league_ledger.models.transaction import Transaction, TransactionCategory
from league_ledger.models.user import User
from league_ledger.permissions import can_manage_funds
from league_ledger.services import account_service, league_service

log = structlog.get_logger(__name__)

# PostgreSQL serialization_failure / deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


class ActorClass(str, enum.Enum):
    """The capacity in which a user submits a transfer."""
    ADMIN = "admin"
    DIRECTOR = "director"


def _is_retryable(exc: DBAPIError) -> bool:
    """True for lock/serialization contention worth re-running the unit for."""
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code in _RETRYABLE_SQLSTATES:
        return True
    if isinstance(exc, OperationalError):
        message = str(orig).lower()
        return "locked" in message or "busy" in message
    return False


# ---------------------------------------------------------------------------
# Transfer
# ---------------------------------------------------------------------------

async def transfer(
    db: AsyncSession,
    actor: User,
    actor_class: ActorClass | str,
    league_id: uuid.UUID,
    from_account_id: uuid.UUID | None,
    to_account_id: uuid.UUID,
    amount: int,
    category: TransactionCategory,
    description: str | None = None,
    use_balance: bool = True,
    idempotency_key: str | None = None,
) -> Transaction:
    """
    Move `amount` from one account to another inside a league.

    Args:
        db: Database session. Committed by this function on success.
        actor: The authenticated user submitting the transfer.
        actor_class: ADMIN or DIRECTOR. Anything else is forbidden.
        league_id: League both accounts must belong to.
        from_account_id: Source account. Optional for a director, whose
                         source is always their own team account.
        to_account_id: Destination account, any account in the league.
        amount: Positive integer amount.
        category: prize, transfer, penalty, sponsorship or other.
        description: Optional memo.
        use_balance: False mints currency from the system account
                     (admin only).
        idempotency_key: Optional client key, unique per league.

    Returns:
        The created Transaction, or the original one on an idempotent replay.

    Raises:
        ForbiddenError: Actor class or actor not allowed.
        InvalidInputError: Non-positive amount, same account, or issuance
                           from a non-system account.
        AccountNotFoundError: Either account missing or outside the league.
        IdempotencyKeyReusedError: Key already used for a different transfer.
        ConflictError: Contention outlasted the retry budget.
    """
    try:
        actor_class = ActorClass(actor_class)
    except ValueError:
        raise ForbiddenError(f"Actor class {actor_class!r} may not create transfers")

    try:
        category = TransactionCategory(category)
    except ValueError:
        raise InvalidInputError(f"Unknown category {category!r}")

    # Captured up front: a rollback expires every ORM instance in the session
    actor_id = actor.id
    admin_capable = can_manage_funds(actor)

    attempt = 0
    while True:
        attempt += 1
        try:
            txn, replayed = await _apply_transfer(
                db,
                actor_id=actor_id,
                admin_capable=admin_capable,
                actor_class=actor_class,
                league_id=league_id,
                from_account_id=from_account_id,
                to_account_id=to_account_id,
                amount=amount,
                category=category,
                description=description,
                use_balance=use_balance,
                idempotency_key=idempotency_key,
            )
            await db.commit()
        except IntegrityError:
            await db.rollback()
            if idempotency_key is None:
                raise
            # A concurrent request inserted the same key first
            existing = await _find_by_idempotency_key(db, league_id, idempotency_key)
            if existing is None:
                raise
            return _check_replay(
                existing, idempotency_key, from_account_id, to_account_id, amount, category, use_balance
            )
        except DBAPIError as exc:
            await db.rollback()
            if not _is_retryable(exc):
                raise
            if attempt > settings.TRANSFER_MAX_RETRIES:
                log.warning(
                    "transfer_conflict",
                    league_id=str(league_id),
                    attempts=attempt,
                    error=str(exc.orig),
                )
                raise ConflictError()
            log.info("transfer_retry", league_id=str(league_id), attempt=attempt)
            await asyncio.sleep(0.05 * attempt)
            continue

        if not replayed:
            log.info(
                "transfer_applied",
                transaction_id=str(txn.id),
                league_id=str(league_id),
                from_account_id=str(txn.from_account_id),
                to_account_id=str(txn.to_account_id),
                amount=txn.amount,
                category=txn.category.value,
                is_issuance=txn.is_issuance,
                actor_id=str(actor_id),
                actor_class=actor_class.value,
            )
        return txn


async def _apply_transfer(
    db: AsyncSession,
    *,
    actor_id: uuid.UUID,
    admin_capable: bool,
    actor_class: ActorClass,
    league_id: uuid.UUID,
    from_account_id: uuid.UUID | None,
    to_account_id: uuid.UUID,
    amount: int,
    category: TransactionCategory,
    description: str | None,
    use_balance: bool,
    idempotency_key: str | None,
) -> tuple[Transaction, bool]:
    """One attempt of the transfer unit. Returns (transaction, replayed)."""
    await account_service.require_league(db, league_id)

    if actor_class == ActorClass.ADMIN:
        if not admin_capable:
            raise ForbiddenError("Fund management access required")
        if from_account_id is None:
            raise InvalidInputError("from_account_id is required")
    else:
        from_account_id = await _resolve_director_source(
            db, league_id, actor_id, from_account_id
        )
        if not use_balance:
            raise ForbiddenError("Directors cannot issue currency")

    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidInputError("Amount must be a positive integer")

    if from_account_id == to_account_id:
        raise InvalidInputError("Source and destination accounts must differ")

    if idempotency_key is not None:
        existing = await _find_by_idempotency_key(db, league_id, idempotency_key)
        if existing is not None:
            return (
                _check_replay(
                    existing, idempotency_key, from_account_id, to_account_id, amount, category, use_balance
                ),
                True,
            )

    # Lock accounts in consistent order (sorted by UUID) to prevent deadlocks
    locked: dict[uuid.UUID, Account] = {}
    for account_id in sorted([from_account_id, to_account_id]):
        result = await db.execute(
            select(Account)
            .where(Account.id == account_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        account = result.scalar_one_or_none()
        if account is None or account.league_id != league_id:
            raise AccountNotFoundError(account_id)
        locked[account_id] = account

    source = locked[from_account_id]
    dest = locked[to_account_id]

    is_issuance = not use_balance
    if is_issuance and not source.is_system:
        raise InvalidInputError("use_balance=false is only allowed from the system account")

    if not is_issuance:
        source.balance = Account.balance - amount
    dest.balance = Account.balance + amount

    txn = Transaction(
        league_id=league_id,
        from_account_id=source.id,
        to_account_id=dest.id,
        amount=amount,
        category=category,
        description=description,
        is_issuance=is_issuance,
        idempotency_key=idempotency_key,
        created_by=actor_id,
    )
    db.add(txn)
    await db.flush()

    # Load the database-computed balances back onto the instances
    await db.refresh(source)
    await db.refresh(dest)
    return txn, False


async def _resolve_director_source(
    db: AsyncSession,
    league_id: uuid.UUID,
    actor_id: uuid.UUID,
    from_account_id: uuid.UUID | None,
) -> uuid.UUID:
    """Force the source to the account of the one team the director directs."""
    team_id = await league_service.get_directed_team_id(db, league_id, actor_id)
    if team_id is None:
        raise ForbiddenError("You are not a team director in this league")

    team_account = await account_service.get_by_owner(db, league_id, OwnerType.TEAM, team_id)
    if team_account is None:
        raise ForbiddenError("You are not a team director in this league")

    if from_account_id is not None and from_account_id != team_account.id:
        raise ForbiddenError("Directors can only spend from their own team account")
    return team_account.id


async def _find_by_idempotency_key(
    db: AsyncSession, league_id: uuid.UUID, idempotency_key: str
) -> Transaction | None:
    result = await db.execute(
        select(Transaction)
        .where(Transaction.league_id == league_id)
        .where(Transaction.idempotency_key == idempotency_key)
    )
    return result.scalar_one_or_none()


def _check_replay(
    existing: Transaction,
    idempotency_key: str,
    from_account_id: uuid.UUID | None,
    to_account_id: uuid.UUID,
    amount: int,
    category: TransactionCategory,
    use_balance: bool,
) -> Transaction:
    same_payload = (
        (from_account_id is None or existing.from_account_id == from_account_id)
        and existing.to_account_id == to_account_id
        and existing.amount == amount
        and existing.category == category
        and existing.is_issuance == (not use_balance)
    )
    if not same_payload:
        raise IdempotencyKeyReusedError(idempotency_key)

    log.info(
        "idempotent_replay",
        transaction_id=str(existing.id),
        idempotency_key=idempotency_key,
    )
    return existing


# ---------------------------------------------------------------------------
# Ledger listings
# ---------------------------------------------------------------------------

def _named_query():
    """Transactions joined to both account names."""
    from_acct = aliased(Account)
    to_acct = aliased(Account)
    return (
        select(
            Transaction,
            from_acct.owner_name.label("from_name"),
            to_acct.owner_name.label("to_name"),
        )
        .join(from_acct, Transaction.from_account_id == from_acct.id)
        .join(to_acct, Transaction.to_account_id == to_acct.id)
    )


def _with_names(rows) -> list[dict]:
    items = []
    for txn, from_name, to_name in rows:
        items.append({
            "id": txn.id,
            "league_id": txn.league_id,
            "from_account_id": txn.from_account_id,
            "to_account_id": txn.to_account_id,
            "from_name": from_name,
            "to_name": to_name,
            "amount": txn.amount,
            "category": txn.category,
            "description": txn.description,
            "is_issuance": txn.is_issuance,
            "created_by": txn.created_by,
            "created_at": txn.created_at,
        })
    return items


async def list_league_transactions(
    db: AsyncSession,
    league_id: uuid.UUID,
    page: int = 1,
    limit: int = 20,
) -> dict:
    """
    One page of a league's ledger, newest first.

    Returns:
        {"transactions": [...], "total": int, "page": int, "total_pages": int}
    """
    await account_service.require_league(db, league_id)

    total_result = await db.execute(
        select(func.count(Transaction.id)).where(Transaction.league_id == league_id)
    )
    total = total_result.scalar()

    result = await db.execute(
        _named_query()
        .where(Transaction.league_id == league_id)
        .order_by(Transaction.created_at.desc(), Transaction.id)
        .limit(limit)
        .offset((page - 1) * limit)
    )

    return {
        "transactions": _with_names(result.all()),
        "total": total,
        "page": page,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


async def list_account_transactions(
    db: AsyncSession,
    account_id: uuid.UUID,
    limit: int = 50,
    offset: int = 0,
) -> list[dict]:
    """Transactions where the account is either source or destination."""
    await account_service.get_account(db, account_id)

    result = await db.execute(
        _named_query()
        .where(
            or_(
                Transaction.from_account_id == account_id,
                Transaction.to_account_id == account_id,
            )
        )
        .order_by(Transaction.created_at.desc(), Transaction.id)
        .limit(limit)
        .offset(offset)
    )
    return _with_names(result.all())
