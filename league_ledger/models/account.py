"""
Account model — a ledger account owned by a team, a participant, or the
league itself.

Each account has:
  - A league scope and an owner: (league_id, owner_type, owner_id) is unique
  - A cached owner_name for display (team name, participant nickname, "FIA")
  - A balance in integer currency units

Balance management:
  `balance` is a materialized cache of the transaction log: it always
  equals the replay of every transaction touching the account. It is the
  only mutable field and only the transaction service writes it, inside the
  same database transaction that appends the Transaction row.

  There is deliberately NO non-negative CHECK constraint. Overdrafts are
  allowed once the caller has obtained human confirmation; the ledger never
  blocks a transfer for insufficient funds.

System account:
  Exactly one owner_type="system" account exists per league, created with
  the league. It is the only account allowed to mint currency (a transfer
  that credits the destination without debiting the source).
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, BigInteger, DateTime, ForeignKey, Enum, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from league_ledger.database import Base


class OwnerType(str, enum.Enum):
    TEAM = "team"
    PARTICIPANT = "participant"
    SYSTEM = "system"


class Account(Base):
    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint(
            "league_id", "owner_type", "owner_id",
            name="uq_accounts_league_owner",
        ),
        Index("ix_accounts_league_owner_type", "league_id", "owner_type"),
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

    owner_type: Mapped[OwnerType] = mapped_column(
        Enum(OwnerType),
        nullable=False,
    )

    # Team id, participant id, or a value derived from the league id for
    # the system account
    owner_id: Mapped[uuid.UUID] = mapped_column(nullable=False)

    owner_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="",
    )

    # Signed: may go negative after an acknowledged overdraft
    balance: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    @property
    def is_system(self) -> bool:
        return self.owner_type == OwnerType.SYSTEM
