"""
Privilege service — the PrivilegeMutator.

Role and permission changes on a User, guarded by:

  1. Actor capability: user.role.change for roles, user.permission.edit
     for permissions (ADMIN holds both)
  2. Last-admin rule: the final ADMIN can never be moved to another role.
     Checked BEFORE the version, so a stale version on the last admin still
     reports LastAdminError. A demotion also carries the rule inside its
     UPDATE, so two admins demoting each other at once cannot both win:

         ... AND (SELECT count(*) FROM users WHERE role = 'ADMIN') > 1

     On SQLite the UPDATE holds the write lock while that count runs. On
     PostgreSQL the pre-check locks the ADMIN rows first.
  3. Optimistic concurrency: the caller sends the version it last read.
     One conditional UPDATE compares and increments it:

         UPDATE users SET ..., version = version + 1
         WHERE id = :target AND version = :expected

     Zero rows updated means someone else got there first
     (VersionConflictError). Nothing is retried automatically.

Every successful change appends a PermissionHistory row in the same unit of
work as the UPDATE. The request session commits both together.
"""

import math
import uuid

import structlog
from sqlalchemy import select, update, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from league_ledger.exceptions import (
    ForbiddenError,
    InvalidInputError,
    LastAdminError,
    UserNotFoundError,
    VersionConflictError,
)
from league_ledger.models.permission_history import ChangeType, PermissionHistory
from league_ledger.models.user import Role, User
from league_ledger.permissions import Permission, has_permission, is_valid_permission

log = structlog.get_logger(__name__)


async def _get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise UserNotFoundError(user_id)
    return user


async def _count_admins_locked(db: AsyncSession) -> int:
    """Count ADMIN users while holding their row locks (no-op on SQLite)."""
    result = await db.execute(
        select(User.id).where(User.role == Role.ADMIN).with_for_update()
    )
    return len(result.all())


async def _compare_and_increment(
    db: AsyncSession,
    target: User,
    expected_version: int,
    values: dict,
    guard_last_admin: bool = False,
) -> int:
    """
    Apply `values` only if the stored version still equals expected_version.

    With guard_last_admin the UPDATE also requires another ADMIN to exist
    at the moment it runs.
    """
    stmt = (
        update(User)
        .where(User.id == target.id)
        .where(User.version == expected_version)
    )
    if guard_last_admin:
        admins = aliased(User)
        stmt = stmt.where(
            select(func.count(admins.id))
            .where(admins.role == Role.ADMIN)
            .scalar_subquery() > 1
        )
    result = await db.execute(
        stmt.values(version=User.version + 1, **values)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        await db.refresh(target)
        if guard_last_admin and target.role == Role.ADMIN and await _count_admins_locked(db) <= 1:
            log.info("privilege_rejected", reason="last_admin", target_id=str(target.id))
            raise LastAdminError(target.id)
        log.info(
            "privilege_rejected",
            reason="version_conflict",
            target_id=str(target.id),
            expected_version=expected_version,
            current_version=target.version,
        )
        raise VersionConflictError(expected_version, target.version)

    await db.refresh(target)
    return target.version


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def update_role(
    db: AsyncSession,
    actor: User,
    target_user_id: uuid.UUID,
    new_role: Role | str,
    expected_version: int,
) -> dict:
    """
    Change a user's role.

    Returns:
        {"new_version": int}

    Raises:
        ForbiddenError: Actor lacks user.role.change.
        InvalidInputError: Unknown role.
        UserNotFoundError: Target doesn't exist.
        LastAdminError: Target is the only ADMIN and new_role isn't ADMIN.
        VersionConflictError: expected_version is stale.
    """
    if not has_permission(actor, Permission.USER_ROLE_CHANGE):
        raise ForbiddenError("Permission user.role.change required")

    try:
        new_role = Role(new_role)
    except ValueError:
        raise InvalidInputError(f"Unknown role {new_role!r}")

    target = await _get_user(db, target_user_id)
    old_role = target.role

    demoting_admin = old_role == Role.ADMIN and new_role != Role.ADMIN
    if demoting_admin and await _count_admins_locked(db) <= 1:
        log.info("privilege_rejected", reason="last_admin", target_id=str(target.id))
        raise LastAdminError(target.id)

    new_version = await _compare_and_increment(
        db, target, expected_version, {"role": new_role}, guard_last_admin=demoting_admin
    )

    db.add(PermissionHistory(
        changer_id=actor.id,
        target_id=target.id,
        change_type=ChangeType.ROLE,
        old_value=old_role.value,
        new_value=new_role.value,
    ))
    await db.flush()

    log.info(
        "role_changed",
        target_id=str(target.id),
        actor_id=str(actor.id),
        old_role=old_role.value,
        new_role=new_role.value,
        new_version=new_version,
    )
    return {"new_version": new_version}


async def update_permissions(
    db: AsyncSession,
    actor: User,
    target_user_id: uuid.UUID,
    new_permissions: list[str],
    expected_version: int,
) -> dict:
    """
    Replace a user's permission codes.

    Codes are de-duplicated and stored sorted. They only take effect while
    the target is STAFF.

    Returns:
        {"new_version": int}
    """
    if not has_permission(actor, Permission.USER_PERMISSION_EDIT):
        raise ForbiddenError("Permission user.permission.edit required")

    invalid = [code for code in new_permissions if not is_valid_permission(code)]
    if invalid:
        raise InvalidInputError(f"Unknown permission codes: {', '.join(sorted(invalid))}")

    normalized = sorted(set(new_permissions))

    target = await _get_user(db, target_user_id)
    old_permissions = list(target.permissions or [])

    new_version = await _compare_and_increment(
        db, target, expected_version, {"permissions": normalized}
    )

    db.add(PermissionHistory(
        changer_id=actor.id,
        target_id=target.id,
        change_type=ChangeType.PERMISSION,
        old_value=old_permissions,
        new_value=normalized,
    ))
    await db.flush()

    log.info(
        "permissions_changed",
        target_id=str(target.id),
        actor_id=str(actor.id),
        added=sorted(set(normalized) - set(old_permissions)),
        removed=sorted(set(old_permissions) - set(normalized)),
        new_version=new_version,
    )
    return {"new_version": new_version}


async def bootstrap_admin(db: AsyncSession, email: str) -> User:
    """
    Promote a user to ADMIN without an acting user (operator scripts).

    The history row records no changer.
    """
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        raise InvalidInputError(f"No user with email {email}")

    old_role = user.role
    if old_role == Role.ADMIN:
        return user

    await _compare_and_increment(db, user, user.version, {"role": Role.ADMIN})
    db.add(PermissionHistory(
        changer_id=None,
        target_id=user.id,
        change_type=ChangeType.ROLE,
        old_value=old_role.value,
        new_value=Role.ADMIN.value,
    ))
    await db.flush()

    log.info("role_changed", target_id=str(user.id), old_role=old_role.value, new_role="ADMIN")
    return user


# ---------------------------------------------------------------------------
# Read-only admin views
# ---------------------------------------------------------------------------

async def get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    return await _get_user(db, user_id)


async def list_users(
    db: AsyncSession,
    page: int = 1,
    limit: int = 20,
    search: str | None = None,
    role: Role | None = None,
) -> dict:
    """Users newest first, optionally filtered by email/nickname and role."""
    query = select(User)
    count_query = select(func.count(User.id))

    if search:
        pattern = f"%{search}%"
        condition = or_(User.email.ilike(pattern), User.nickname.ilike(pattern))
        query = query.where(condition)
        count_query = count_query.where(condition)
    if role is not None:
        query = query.where(User.role == role)
        count_query = count_query.where(User.role == role)

    total = (await db.execute(count_query)).scalar()
    result = await db.execute(
        query.order_by(User.created_at.desc(), User.email)
        .limit(limit)
        .offset((page - 1) * limit)
    )

    return {
        "users": list(result.scalars().all()),
        "total": total,
        "page": page,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


def _history_query():
    changer = aliased(User)
    target = aliased(User)
    return (
        select(
            PermissionHistory,
            changer.nickname.label("changer_nickname"),
            target.nickname.label("target_nickname"),
        )
        .outerjoin(changer, PermissionHistory.changer_id == changer.id)
        .join(target, PermissionHistory.target_id == target.id)
    )


def _history_items(rows) -> list[dict]:
    return [
        {
            "id": record.id,
            "changer_id": record.changer_id,
            "changer_nickname": changer_nickname,
            "target_id": record.target_id,
            "target_nickname": target_nickname,
            "change_type": record.change_type,
            "old_value": record.old_value,
            "new_value": record.new_value,
            "created_at": record.created_at,
        }
        for record, changer_nickname, target_nickname in rows
    ]


async def get_user_history(
    db: AsyncSession,
    user_id: uuid.UUID,
    page: int = 1,
    limit: int = 20,
) -> dict:
    await _get_user(db, user_id)

    total = (
        await db.execute(
            select(func.count(PermissionHistory.id))
            .where(PermissionHistory.target_id == user_id)
        )
    ).scalar()

    result = await db.execute(
        _history_query()
        .where(PermissionHistory.target_id == user_id)
        .order_by(PermissionHistory.created_at.desc(), PermissionHistory.id)
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return {
        "history": _history_items(result.all()),
        "total": total,
        "page": page,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


async def list_permission_history(db: AsyncSession, limit: int = 50) -> list[dict]:
    result = await db.execute(
        _history_query()
        .order_by(PermissionHistory.created_at.desc(), PermissionHistory.id)
        .limit(limit)
    )
    return _history_items(result.all())


async def user_stats(db: AsyncSession) -> dict:
    result = await db.execute(select(User.role, func.count(User.id)).group_by(User.role))
    users_by_role = {role.value: 0 for role in Role}
    for role, count in result.all():
        users_by_role[role.value] = count

    return {
        "total_users": sum(users_by_role.values()),
        "users_by_role": users_by_role,
    }
