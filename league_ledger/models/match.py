"""
Match model — a scheduled round of a league.

The ledger only reads matches: completed rounds are the period key that
income/expense flow series are bucketed by.
"""

import enum
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import Date, DateTime, Integer, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from league_ledger.database import Base


class MatchStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Match(Base):
    __tablename__ = "matches"

    __table_args__ = (
        UniqueConstraint("league_id", "round", name="uq_matches_league_round"),
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

    round: Mapped[int] = mapped_column(Integer, nullable=False)

    match_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[MatchStatus] = mapped_column(
        Enum(MatchStatus),
        default=MatchStatus.SCHEDULED,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
