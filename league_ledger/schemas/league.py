"""
Pydantic schemas for leagues, teams, participants and matches.
"""

import uuid
from datetime import date, datetime

from pydantic import BaseModel, Field

from league_ledger.models.league import LeagueStatus
from league_ledger.models.match import MatchStatus
from league_ledger.models.participant import ParticipantRole, ParticipantStatus
from league_ledger.schemas.account import AccountResponse


class LeagueCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    season: int = Field(1, ge=1)
    status: LeagueStatus = LeagueStatus.DRAFT


class LeagueResponse(BaseModel):
    id: uuid.UUID
    name: str
    season: int
    status: LeagueStatus
    created_by: uuid.UUID | None
    created_at: datetime

    model_config = {"from_attributes": True}


class TeamCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    color: str | None = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")


class TeamResponse(BaseModel):
    id: uuid.UUID
    league_id: uuid.UUID
    name: str
    color: str | None

    model_config = {"from_attributes": True}


class TeamCreateResponse(BaseModel):
    team: TeamResponse
    account: AccountResponse


class ParticipantCreateRequest(BaseModel):
    """Request body for POST /admin/leagues/{id}/participants."""
    user_id: uuid.UUID
    team_id: uuid.UUID | None = None
    roles: list[ParticipantRole] = Field(default_factory=list)


class ParticipantResponse(BaseModel):
    id: uuid.UUID
    league_id: uuid.UUID
    user_id: uuid.UUID
    team_id: uuid.UUID | None
    roles: list[str]
    status: ParticipantStatus

    model_config = {"from_attributes": True}


class ParticipantCreateResponse(BaseModel):
    participant: ParticipantResponse
    account: AccountResponse


class MatchCreateRequest(BaseModel):
    round: int = Field(ge=1)
    match_date: date
    status: MatchStatus = MatchStatus.SCHEDULED


class MatchUpdateRequest(BaseModel):
    match_date: date | None = None
    status: MatchStatus | None = None


class MatchResponse(BaseModel):
    id: uuid.UUID
    league_id: uuid.UUID
    round: int
    match_date: date
    status: MatchStatus

    model_config = {"from_attributes": True}
