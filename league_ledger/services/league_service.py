"""
League service — leagues, teams, participants and matches.

Only the parts the ledger depends on live here. Every creation path also
creates the owner's ledger account in the same unit of work:

  - create_league()        -> the league's system account
  - create_team()          -> the team account
  - register_participant() -> the participant account (approved only)

Matches are plain records; completed matches become the period key of the
flow series in stats_service.
"""

import uuid
from datetime import date

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from league_ledger.exceptions import (
    ForbiddenError,
    InvalidInputError,
    MatchNotFoundError,
    TeamNotFoundError,
    UserNotFoundError,
)
from league_ledger.models.account import Account, OwnerType
from league_ledger.models.league import League, LeagueStatus
from league_ledger.models.match import Match, MatchStatus
from league_ledger.models.participant import Participant, ParticipantStatus
from league_ledger.models.team import Team
from league_ledger.models.user import User
from league_ledger.permissions import Permission, has_permission
from league_ledger.services import account_service

log = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Leagues
# ---------------------------------------------------------------------------

async def create_league(
    db: AsyncSession,
    actor: User,
    name: str,
    season: int = 1,
    status: LeagueStatus = LeagueStatus.DRAFT,
) -> League:
    """Create a league together with its system account."""
    if not has_permission(actor, Permission.LEAGUE_CREATE):
        raise ForbiddenError("Permission league.create required")

    league = League(name=name, season=season, status=status, created_by=actor.id)
    db.add(league)
    await db.flush()

    system_account = await account_service.ensure_system_account(db, league.id)
    log.info(
        "league_created",
        league_id=str(league.id),
        system_account_id=str(system_account.id),
        actor_id=str(actor.id),
    )
    return league


async def get_league(db: AsyncSession, league_id: uuid.UUID) -> League:
    return await account_service.require_league(db, league_id)


async def list_teams(db: AsyncSession, league_id: uuid.UUID) -> list[Team]:
    await account_service.require_league(db, league_id)
    result = await db.execute(
        select(Team).where(Team.league_id == league_id).order_by(Team.name)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------

async def create_team(
    db: AsyncSession,
    league_id: uuid.UUID,
    name: str,
    color: str | None = None,
) -> tuple[Team, Account]:
    """Create a team and its ledger account."""
    await account_service.require_league(db, league_id)

    existing = await db.execute(
        select(Team).where(Team.league_id == league_id).where(Team.name == name)
    )
    if existing.scalar_one_or_none() is not None:
        raise InvalidInputError(f"Team {name!r} already exists in this league")

    team = Team(league_id=league_id, name=name, color=color)
    db.add(team)
    await db.flush()

    account = await account_service.get_or_create_for_owner(
        db,
        league_id=league_id,
        owner_type=OwnerType.TEAM,
        owner_id=team.id,
        owner_name=team.name,
    )
    return team, account


async def get_team(db: AsyncSession, team_id: uuid.UUID) -> Team:
    team = await db.get(Team, team_id)
    if team is None:
        raise TeamNotFoundError(team_id)
    return team


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------

async def register_participant(
    db: AsyncSession,
    league_id: uuid.UUID,
    user_id: uuid.UUID,
    team_id: uuid.UUID | None = None,
    roles: list[str] | None = None,
) -> tuple[Participant, Account]:
    """
    Register an approved participant and open its personal account.

    Registering the same user twice updates team and roles instead of
    failing; the account is shared by both calls.
    """
    await account_service.require_league(db, league_id)

    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFoundError(user_id)

    if team_id is not None:
        team = await get_team(db, team_id)
        if team.league_id != league_id:
            raise InvalidInputError("Team does not belong to this league")

    result = await db.execute(
        select(Participant)
        .where(Participant.league_id == league_id)
        .where(Participant.user_id == user_id)
    )
    participant = result.scalar_one_or_none()

    if participant is None:
        participant = Participant(league_id=league_id, user_id=user_id)
        db.add(participant)

    participant.team_id = team_id
    participant.roles = sorted(set(roles or []))
    participant.status = ParticipantStatus.APPROVED
    await db.flush()

    account = await account_service.get_or_create_for_owner(
        db,
        league_id=league_id,
        owner_type=OwnerType.PARTICIPANT,
        owner_id=participant.id,
        owner_name=user.nickname,
    )
    return participant, account


async def get_participant(
    db: AsyncSession, league_id: uuid.UUID, user_id: uuid.UUID
) -> Participant | None:
    result = await db.execute(
        select(Participant)
        .where(Participant.league_id == league_id)
        .where(Participant.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def get_my_account(db: AsyncSession, actor: User, league_id: uuid.UUID) -> Account:
    """
    The caller's personal account in a league, opened on first request.

    Raises:
        ForbiddenError: If the caller is not an approved participant.
    """
    await account_service.require_league(db, league_id)

    participant = await get_participant(db, league_id, actor.id)
    if participant is None or participant.status != ParticipantStatus.APPROVED:
        raise ForbiddenError("You are not an approved participant of this league")

    return await account_service.get_or_create_for_owner(
        db,
        league_id=league_id,
        owner_type=OwnerType.PARTICIPANT,
        owner_id=participant.id,
        owner_name=actor.nickname,
    )


async def get_directed_team_id(
    db: AsyncSession, league_id: uuid.UUID, user_id: uuid.UUID
) -> uuid.UUID | None:
    """The team the user directs in the league, or None if they direct none."""
    participant = await get_participant(db, league_id, user_id)
    if participant is None or not participant.is_director:
        return None
    return participant.team_id


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------

async def create_match(
    db: AsyncSession,
    league_id: uuid.UUID,
    round: int,
    match_date: date,
    status: MatchStatus = MatchStatus.SCHEDULED,
) -> Match:
    await account_service.require_league(db, league_id)

    existing = await db.execute(
        select(Match).where(Match.league_id == league_id).where(Match.round == round)
    )
    if existing.scalar_one_or_none() is not None:
        raise InvalidInputError(f"Round {round} already exists in this league")

    match = Match(league_id=league_id, round=round, match_date=match_date, status=status)
    db.add(match)
    await db.flush()
    return match


async def update_match(
    db: AsyncSession,
    match_id: uuid.UUID,
    match_date: date | None = None,
    status: MatchStatus | None = None,
) -> Match:
    match = await db.get(Match, match_id)
    if match is None:
        raise MatchNotFoundError(match_id)

    if match_date is not None:
        match.match_date = match_date
    if status is not None:
        match.status = status

    await db.flush()
    log.info("match_updated", match_id=str(match.id), status=match.status.value)
    return match
