"""
Admin router — league setup, admin transfers, audits and privileges.

Every endpoint requires a STAFF or ADMIN user holding the listed permission
(ADMIN holds all of them).

League setup:
  POST /admin/leagues                              league.create
  POST /admin/leagues/{league_id}/teams            league.edit
  POST /admin/leagues/{league_id}/participants     league.edit
  POST /admin/leagues/{league_id}/matches          match.edit
  PUT  /admin/matches/{match_id}                   match.edit

Finance:
  POST /admin/leagues/{league_id}/transactions     fund.manage
  GET  /admin/leagues/{league_id}/finance/audit    fund.view

Privileges:
  GET  /admin/users                                user.view
  GET  /admin/users/{user_id}                      user.view
  PUT  /admin/users/{user_id}/role                 user.role.change
  PUT  /admin/users/{user_id}/permissions          user.permission.edit
  GET  /admin/users/{user_id}/history              user.view
  GET  /admin/permission-history                   user.view
  GET  /admin/permissions                          user.view
  GET  /admin/stats                                user.view

All admin routes live in this one router so that no two routers share a
prefix with overlapping parameterized paths.
"""

import uuid

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from league_ledger.database import get_db
from league_ledger.dependencies import require_fund_manager, require_permission
from league_ledger.models.user import Role, User
from league_ledger.permissions import PERMISSION_INFO, ROLE_INFO, Permission
from league_ledger.schemas.finance import FinanceAuditResponse
from league_ledger.schemas.league import (
    LeagueCreateRequest,
    LeagueResponse,
    MatchCreateRequest,
    MatchResponse,
    MatchUpdateRequest,
    ParticipantCreateRequest,
    ParticipantCreateResponse,
    TeamCreateRequest,
    TeamCreateResponse,
)
from league_ledger.schemas.transaction import TransactionResponse, TransferRequest
from league_ledger.schemas.user import (
    PermissionCatalogResponse,
    PermissionHistoryPageResponse,
    PermissionHistoryResponse,
    PermissionsUpdateRequest,
    PrivilegeUpdateResponse,
    RoleUpdateRequest,
    UserListResponse,
    UserResponse,
    UserStatsResponse,
)
from league_ledger.services import (
    league_service,
    privilege_service,
    stats_service,
    transaction_service,
)
from league_ledger.services.transaction_service import ActorClass

router = APIRouter()


# ---------------------------------------------------------------------------
# League setup
# ---------------------------------------------------------------------------

@router.post(
    "/leagues",
    response_model=LeagueResponse,
    status_code=status.HTTP_201_CREATED,
    summary="[Admin] Create a league",
)
async def create_league(
    request: LeagueCreateRequest,
    admin: User = Depends(require_permission(Permission.LEAGUE_CREATE)),
    db: AsyncSession = Depends(get_db),
):
    """Creates the league and its system ("FIA") account together."""
    return await league_service.create_league(
        db, admin, name=request.name, season=request.season, status=request.status
    )


@router.post(
    "/leagues/{league_id}/teams",
    response_model=TeamCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="[Admin] Create a team",
)
async def create_team(
    league_id: uuid.UUID,
    request: TeamCreateRequest,
    admin: User = Depends(require_permission(Permission.LEAGUE_EDIT)),
    db: AsyncSession = Depends(get_db),
):
    team, account = await league_service.create_team(
        db, league_id, name=request.name, color=request.color
    )
    return {"team": team, "account": account}


@router.post(
    "/leagues/{league_id}/participants",
    response_model=ParticipantCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="[Admin] Register an approved participant",
)
async def register_participant(
    league_id: uuid.UUID,
    request: ParticipantCreateRequest,
    admin: User = Depends(require_permission(Permission.LEAGUE_EDIT)),
    db: AsyncSession = Depends(get_db),
):
    """Registers (or re-registers) the participant and opens its account."""
    participant, account = await league_service.register_participant(
        db,
        league_id,
        user_id=request.user_id,
        team_id=request.team_id,
        roles=[role.value for role in request.roles],
    )
    return {"participant": participant, "account": account}


@router.post(
    "/leagues/{league_id}/matches",
    response_model=MatchResponse,
    status_code=status.HTTP_201_CREATED,
    summary="[Admin] Schedule a match",
)
async def create_match(
    league_id: uuid.UUID,
    request: MatchCreateRequest,
    admin: User = Depends(require_permission(Permission.MATCH_EDIT)),
    db: AsyncSession = Depends(get_db),
):
    return await league_service.create_match(
        db,
        league_id,
        round=request.round,
        match_date=request.match_date,
        status=request.status,
    )


@router.put(
    "/matches/{match_id}",
    response_model=MatchResponse,
    summary="[Admin] Update a match",
)
async def update_match(
    match_id: uuid.UUID,
    request: MatchUpdateRequest,
    admin: User = Depends(require_permission(Permission.MATCH_EDIT)),
    db: AsyncSession = Depends(get_db),
):
    """Marking a match completed opens a new period in the flow series."""
    return await league_service.update_match(
        db, match_id, match_date=request.match_date, status=request.status
    )


# ---------------------------------------------------------------------------
# Finance
# ---------------------------------------------------------------------------

@router.post(
    "/leagues/{league_id}/transactions",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="[Admin] Create a transfer",
)
async def create_admin_transfer(
    league_id: uuid.UUID,
    request: TransferRequest,
    idempotency_key: str | None = Header(None, alias="Idempotency-Key", max_length=100),
    admin: User = Depends(require_fund_manager),
    db: AsyncSession = Depends(get_db),
):
    """
    Move currency between any two accounts of the league.

    With `use_balance=false` and the system account as source, the amount
    is minted: the destination is credited and the system account is left
    untouched.

    Send an `Idempotency-Key` header to make client retries safe.
    """
    return await transaction_service.transfer(
        db,
        actor=admin,
        actor_class=ActorClass.ADMIN,
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
    "/leagues/{league_id}/finance/audit",
    response_model=FinanceAuditResponse,
    summary="[Admin] Audit league balances",
)
async def audit_league(
    league_id: uuid.UUID,
    admin: User = Depends(require_permission(Permission.FUND_VIEW)),
    db: AsyncSession = Depends(get_db),
):
    """Replays the whole league log and compares it with cached balances."""
    return await stats_service.audit_league(db, league_id)


# ---------------------------------------------------------------------------
# Users and privileges
# ---------------------------------------------------------------------------

@router.get(
    "/users",
    response_model=UserListResponse,
    summary="[Admin] List users",
)
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: str | None = Query(None, max_length=100),
    role: Role | None = None,
    admin: User = Depends(require_permission(Permission.USER_VIEW)),
    db: AsyncSession = Depends(get_db),
):
    return await privilege_service.list_users(
        db, page=page, limit=limit, search=search, role=role
    )


@router.get(
    "/users/{user_id}",
    response_model=UserResponse,
    summary="[Admin] Get a user",
)
async def get_user(
    user_id: uuid.UUID,
    admin: User = Depends(require_permission(Permission.USER_VIEW)),
    db: AsyncSession = Depends(get_db),
):
    return await privilege_service.get_user(db, user_id)


@router.put(
    "/users/{user_id}/role",
    response_model=PrivilegeUpdateResponse,
    summary="[Admin] Change a user's role",
)
async def update_role(
    user_id: uuid.UUID,
    request: RoleUpdateRequest,
    admin: User = Depends(require_permission(Permission.USER_ROLE_CHANGE)),
    db: AsyncSession = Depends(get_db),
):
    """
    Change the role, guarded by the version the caller last read.

    Returns 409 `version_conflict` when someone else changed the user in the
    meantime, and 409 `last_admin` when the target is the only ADMIN.
    """
    result = await privilege_service.update_role(
        db, admin, user_id, new_role=request.role, expected_version=request.version
    )
    return PrivilegeUpdateResponse(message="Role updated", new_version=result["new_version"])


@router.put(
    "/users/{user_id}/permissions",
    response_model=PrivilegeUpdateResponse,
    summary="[Admin] Replace a user's permissions",
)
async def update_permissions(
    user_id: uuid.UUID,
    request: PermissionsUpdateRequest,
    admin: User = Depends(require_permission(Permission.USER_PERMISSION_EDIT)),
    db: AsyncSession = Depends(get_db),
):
    result = await privilege_service.update_permissions(
        db,
        admin,
        user_id,
        new_permissions=request.permissions,
        expected_version=request.version,
    )
    return PrivilegeUpdateResponse(
        message="Permissions updated", new_version=result["new_version"]
    )


@router.get(
    "/users/{user_id}/history",
    response_model=PermissionHistoryPageResponse,
    summary="[Admin] A user's privilege history",
)
async def get_user_history(
    user_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_permission(Permission.USER_VIEW)),
    db: AsyncSession = Depends(get_db),
):
    return await privilege_service.get_user_history(db, user_id, page=page, limit=limit)


@router.get(
    "/permission-history",
    response_model=list[PermissionHistoryResponse],
    summary="[Admin] Recent privilege changes",
)
async def list_permission_history(
    limit: int = Query(50, ge=1, le=200),
    admin: User = Depends(require_permission(Permission.USER_VIEW)),
    db: AsyncSession = Depends(get_db),
):
    return await privilege_service.list_permission_history(db, limit=limit)


@router.get(
    "/permissions",
    response_model=PermissionCatalogResponse,
    summary="[Admin] Permission and role catalogue",
)
async def list_permissions(
    admin: User = Depends(require_permission(Permission.USER_VIEW)),
):
    return {
        "permissions": [
            {"code": code.value, "name": name, "description": description, "category": category}
            for code, name, description, category in PERMISSION_INFO
        ],
        "roles": [
            {"code": role.value, "name": name, "description": description}
            for role, name, description in ROLE_INFO
        ],
    }


@router.get(
    "/stats",
    response_model=UserStatsResponse,
    summary="[Admin] User counts by role",
)
async def get_user_stats(
    admin: User = Depends(require_permission(Permission.USER_VIEW)),
    db: AsyncSession = Depends(get_db),
):
    return await privilege_service.user_stats(db)
