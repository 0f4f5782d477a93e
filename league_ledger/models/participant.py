"""
Participant model — a user's membership in a league.

Only the parts the ledger depends on are modelled here:
  - status: only APPROVED participants own a ledger account
  - roles: a participant whose roles include "director" and who is attached
    to a team acts for that team's account in director transfers
  - team_id: the team the participant races or manages for
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from league_ledger.database import Base


class ParticipantStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ParticipantRole(str, enum.Enum):
    DIRECTOR = "director"
    PLAYER = "player"
    RESERVE = "reserve"
    ENGINEER = "engineer"


class Participant(Base):
    __tablename__ = "participants"

    # A user joins a league at most once
    __table_args__ = (
        UniqueConstraint("league_id", "user_id", name="uq_participants_league_user"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    league_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("leagues.id"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    team_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("teams.id"),
        nullable=True,
    )

    roles: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    status: Mapped[ParticipantStatus] = mapped_column(
        Enum(ParticipantStatus),
        default=ParticipantStatus.PENDING,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    @property
    def is_director(self) -> bool:
        return (
            self.status == ParticipantStatus.APPROVED
            and ParticipantRole.DIRECTOR.value in (self.roles or [])
            and self.team_id is not None
        )
