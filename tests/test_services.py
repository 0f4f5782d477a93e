"""
Service-layer tests — calling the services directly with an explicit actor.

The HTTP tests cover the same operations through the routers; these pin the
parts the routers never reach:
  - actor_class values outside admin/director
  - amounts that aren't plain integers
  - the retry loop around storage contention
  - privilege changes racing on the same version
  - the operator bootstrap path with no acting user
"""

import uuid
from unittest.mock import patch, AsyncMock

import pytest
from sqlalchemy import select, func, update
from sqlalchemy.exc import DBAPIError, OperationalError

from league_ledger.config import settings
from league_ledger.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    LastAdminError,
    LeagueNotFoundError,
    VersionConflictError,
)
from league_ledger.models.account import Account
from league_ledger.models.permission_history import PermissionHistory
from league_ledger.models.transaction import Transaction, TransactionCategory
from league_ledger.models.user import Role, User
from league_ledger.services import (
    league_service,
    privilege_service,
    stats_service,
    transaction_service,
)
from league_ledger.services.transaction_service import ActorClass


def locked_error() -> OperationalError:
    return OperationalError("UPDATE accounts", {}, Exception("database is locked"))


async def balance(db, account_id) -> int:
    result = await db.execute(select(Account.balance).where(Account.id == uuid.UUID(account_id)))
    return result.scalar_one()


async def transaction_count(db) -> int:
    return (await db.execute(select(func.count(Transaction.id)))).scalar()


class TestTransferService:
    """transaction_service.transfer with explicit actors."""

    async def test_admin_transfer_returns_transaction(self, db_session, admin, league):
        actor = await db_session.get(User, admin["id"])
        txn = await transaction_service.transfer(
            db_session,
            actor=actor,
            actor_class=ActorClass.ADMIN,
            league_id=uuid.UUID(league["id"]),
            from_account_id=uuid.UUID(league["system_account_id"]),
            to_account_id=uuid.UUID(league["team_a"]["account_id"]),
            amount=750,
            category=TransactionCategory.SPONSORSHIP,
            use_balance=False,
        )
        assert txn.is_issuance is True
        assert txn.created_by == admin["id"]
        assert await balance(db_session, league["team_a"]["account_id"]) == 750
        assert await balance(db_session, league["system_account_id"]) == 0

    async def test_actor_class_accepts_plain_strings(self, db_session, admin, league):
        actor = await db_session.get(User, admin["id"])
        txn = await transaction_service.transfer(
            db_session,
            actor=actor,
            actor_class="admin",
            league_id=uuid.UUID(league["id"]),
            from_account_id=uuid.UUID(league["team_a"]["account_id"]),
            to_account_id=uuid.UUID(league["team_b"]["account_id"]),
            amount=5,
            category="transfer",
        )
        assert txn.category == TransactionCategory.TRANSFER

    @pytest.mark.parametrize("actor_class", ["spectator", "steward", ""])
    async def test_unknown_actor_class_forbidden(self, db_session, admin, league, actor_class):
        actor = await db_session.get(User, admin["id"])
        with pytest.raises(ForbiddenError):
            await transaction_service.transfer(
                db_session,
                actor=actor,
                actor_class=actor_class,
                league_id=uuid.UUID(league["id"]),
                from_account_id=uuid.UUID(league["team_a"]["account_id"]),
                to_account_id=uuid.UUID(league["team_b"]["account_id"]),
                amount=5,
                category=TransactionCategory.TRANSFER,
            )
        assert await transaction_count(db_session) == 0

    async def test_admin_class_requires_fund_manager(self, db_session, league, make_user):
        user = await make_user("driver@example.com")
        actor = await db_session.get(User, user["id"])
        with pytest.raises(ForbiddenError):
            await transaction_service.transfer(
                db_session,
                actor=actor,
                actor_class=ActorClass.ADMIN,
                league_id=uuid.UUID(league["id"]),
                from_account_id=uuid.UUID(league["team_a"]["account_id"]),
                to_account_id=uuid.UUID(league["team_b"]["account_id"]),
                amount=5,
                category=TransactionCategory.TRANSFER,
            )

    async def test_director_class_requires_a_directed_team(self, db_session, admin, league):
        """Holding ADMIN doesn't make someone a director."""
        actor = await db_session.get(User, admin["id"])
        with pytest.raises(ForbiddenError):
            await transaction_service.transfer(
                db_session,
                actor=actor,
                actor_class=ActorClass.DIRECTOR,
                league_id=uuid.UUID(league["id"]),
                from_account_id=None,
                to_account_id=uuid.UUID(league["team_b"]["account_id"]),
                amount=5,
                category=TransactionCategory.TRANSFER,
            )

    @pytest.mark.parametrize("amount", [True, 1.5, "10"])
    async def test_amount_must_be_a_plain_integer(self, db_session, admin, league, amount):
        actor = await db_session.get(User, admin["id"])
        with pytest.raises(InvalidInputError):
            await transaction_service.transfer(
                db_session,
                actor=actor,
                actor_class=ActorClass.ADMIN,
                league_id=uuid.UUID(league["id"]),
                from_account_id=uuid.UUID(league["team_a"]["account_id"]),
                to_account_id=uuid.UUID(league["team_b"]["account_id"]),
                amount=amount,
                category=TransactionCategory.TRANSFER,
            )

    async def test_unknown_category_rejected(self, db_session, admin, league):
        actor = await db_session.get(User, admin["id"])
        with pytest.raises(InvalidInputError):
            await transaction_service.transfer(
                db_session,
                actor=actor,
                actor_class=ActorClass.ADMIN,
                league_id=uuid.UUID(league["id"]),
                from_account_id=uuid.UUID(league["team_a"]["account_id"]),
                to_account_id=uuid.UUID(league["team_b"]["account_id"]),
                amount=5,
                category="bribe",
            )


class TestDirectorSource:
    """A director's source is the account of the one team they direct."""

    async def test_directed_team_is_the_attached_team(self, db_session, league, director):
        team_id = await league_service.get_directed_team_id(
            db_session, uuid.UUID(league["id"]), director["id"]
        )
        assert team_id == uuid.UUID(league["team_a"]["id"])

    async def test_plain_participant_directs_nothing(self, client, db_session, admin, league, make_user):
        user = await make_user("driver@example.com", nickname="Rookie")
        response = await client.post(
            f"/admin/leagues/{league['id']}/participants",
            json={"user_id": str(user["id"]), "team_id": league["team_b"]["id"], "roles": []},
            headers=admin["headers"],
        )
        assert response.status_code == 201, response.text

        assert await league_service.get_directed_team_id(
            db_session, uuid.UUID(league["id"]), user["id"]
        ) is None

    async def test_omitted_source_resolves_to_team_account(self, db_session, league, director):
        actor = await db_session.get(User, director["id"])
        txn = await transaction_service.transfer(
            db_session,
            actor=actor,
            actor_class=ActorClass.DIRECTOR,
            league_id=uuid.UUID(league["id"]),
            from_account_id=None,
            to_account_id=uuid.UUID(league["team_b"]["account_id"]),
            amount=40,
            category=TransactionCategory.TRANSFER,
        )
        assert txn.from_account_id == uuid.UUID(league["team_a"]["account_id"])
        assert await balance(db_session, league["team_a"]["account_id"]) == -40


class TestTransferRetry:
    """Contention is retried a bounded number of times, then ConflictError."""

    async def _transfer(self, db, admin_id, league, amount=100):
        actor = await db.get(User, admin_id)
        return await transaction_service.transfer(
            db,
            actor=actor,
            actor_class=ActorClass.ADMIN,
            league_id=uuid.UUID(league["id"]),
            from_account_id=uuid.UUID(league["team_a"]["account_id"]),
            to_account_id=uuid.UUID(league["team_b"]["account_id"]),
            amount=amount,
            category=TransactionCategory.TRANSFER,
        )

    async def test_failure_after_flush_is_retried_once(self, db_session, admin, league):
        """The first attempt writes, then hits a lock; the rollback undoes it."""
        original = transaction_service._apply_transfer
        calls = 0

        async def flaky(*args, **kwargs):
            nonlocal calls
            calls += 1
            result = await original(*args, **kwargs)
            if calls == 1:
                raise locked_error()
            return result

        with patch.object(transaction_service, "_apply_transfer", side_effect=flaky), \
                patch.object(transaction_service.asyncio, "sleep", new_callable=AsyncMock) as sleep:
            await self._transfer(db_session, admin["id"], league)

        assert calls == 2
        sleep.assert_awaited_once()
        assert await balance(db_session, league["team_a"]["account_id"]) == -100
        assert await balance(db_session, league["team_b"]["account_id"]) == 100
        assert await transaction_count(db_session) == 1

    async def test_exhausted_budget_raises_conflict(self, db_session, admin, league, monkeypatch):
        monkeypatch.setattr(settings, "TRANSFER_MAX_RETRIES", 2)

        with patch.object(
            transaction_service, "_apply_transfer", side_effect=locked_error()
        ) as apply, patch.object(
            transaction_service.asyncio, "sleep", new_callable=AsyncMock
        ) as sleep:
            with pytest.raises(ConflictError):
                await self._transfer(db_session, admin["id"], league)

        assert apply.await_count == 3
        assert sleep.await_count == 2
        assert await transaction_count(db_session) == 0

    async def test_non_contention_errors_propagate(self, db_session, admin, league):
        error = OperationalError("SELECT", {}, Exception("no such table: accounts"))
        with patch.object(transaction_service, "_apply_transfer", side_effect=error) as apply:
            with pytest.raises(OperationalError):
                await self._transfer(db_session, admin["id"], league)
        assert apply.await_count == 1

    def test_postgres_serialization_failure_is_retryable(self):
        class SerializationFailure(Exception):
            sqlstate = "40001"

        class UniqueViolation(Exception):
            sqlstate = "23505"

        assert transaction_service._is_retryable(
            DBAPIError("UPDATE accounts", {}, SerializationFailure("could not serialize"))
        )
        assert not transaction_service._is_retryable(
            DBAPIError("INSERT", {}, UniqueViolation("duplicate key"))
        )


class TestPrivilegeService:
    """privilege_service with explicit actors."""

    async def test_racing_updates_on_one_version(self, db_session, admin, make_user):
        user = await make_user("driver@example.com")
        actor = await db_session.get(User, admin["id"])

        first = await privilege_service.update_role(
            db_session, actor, user["id"], Role.STAFF, expected_version=1
        )
        assert first == {"new_version": 2}

        with pytest.raises(VersionConflictError) as exc_info:
            await privilege_service.update_permissions(
                db_session, actor, user["id"], ["fund.view"], expected_version=1
            )
        assert exc_info.value.expected_version == 1
        assert exc_info.value.current_version == 2

        target = await privilege_service.get_user(db_session, user["id"])
        assert target.role == Role.STAFF
        assert target.permissions == []

    async def test_last_admin_checked_before_version(self, db_session, admin):
        actor = await db_session.get(User, admin["id"])
        with pytest.raises(LastAdminError):
            await privilege_service.update_role(
                db_session, actor, admin["id"], "STAFF", expected_version=42
            )

    async def test_demotion_guard_runs_inside_the_update(self, db_session, admin, make_user):
        """
        The other admin is demoted after the pre-check counted two admins.
        The guarded UPDATE matches nothing and the last admin stays.
        """
        second = await make_user("second@example.com", role=Role.ADMIN)
        actor = await db_session.get(User, admin["id"])
        await db_session.execute(
            update(User)
            .where(User.id == admin["id"])
            .values(role=Role.STAFF, version=User.version + 1)
            .execution_options(synchronize_session=False)
        )

        with patch.object(
            privilege_service, "_count_admins_locked", new_callable=AsyncMock, side_effect=[2, 1]
        ) as count:
            with pytest.raises(LastAdminError):
                await privilege_service.update_role(
                    db_session, actor, second["id"], Role.STAFF, expected_version=1
                )

        assert count.await_count == 2
        target = await privilege_service.get_user(db_session, second["id"])
        assert target.role == Role.ADMIN
        assert target.version == 1

    async def test_actor_needs_permission(self, db_session, make_user):
        staff = await make_user("steward@example.com", role=Role.STAFF, permissions=["user.view"])
        actor = await db_session.get(User, staff["id"])
        with pytest.raises(ForbiddenError):
            await privilege_service.update_permissions(
                db_session, actor, staff["id"], ["*"], expected_version=1
            )

    async def test_bootstrap_admin_records_no_changer(self, db_session, make_user):
        user = await make_user("owner@example.com")
        promoted = await privilege_service.bootstrap_admin(db_session, "owner@example.com")
        await db_session.commit()

        assert promoted.role == Role.ADMIN
        assert promoted.version == 2

        result = await db_session.execute(
            select(PermissionHistory).where(PermissionHistory.target_id == user["id"])
        )
        record = result.scalar_one()
        assert record.changer_id is None
        assert record.new_value == "ADMIN"

    async def test_bootstrap_admin_unknown_email(self, db_session):
        with pytest.raises(InvalidInputError):
            await privilege_service.bootstrap_admin(db_session, "ghost@example.com")


class TestStatsService:
    async def test_unknown_league(self, db_session):
        with pytest.raises(LeagueNotFoundError):
            await stats_service.league_stats(db_session, uuid.uuid4())
