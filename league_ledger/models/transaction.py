"""
Transaction model — one immutable, directional currency movement.

The ledger is a log, not a mutable record: rows are only ever inserted.
There is no update or delete path anywhere in the code base.

Key fields:
  - from_account_id / to_account_id: always both set and always different
  - amount: always positive; direction is given by from -> to
  - category: prize, transfer, penalty, sponsorship or other
  - is_issuance: True only when the system account minted the amount
    (destination credited, source NOT debited). Every other transaction is
    balance-conserving.
  - idempotency_key: optional client key, unique per league, so a retried
    request after an ambiguous failure cannot apply twice
  - created_by: the user who submitted the transfer

Because issuance is recorded explicitly, every account balance can be
recomputed exactly from this table:

    balance = sum(amount where to == account)
            - sum(amount where from == account and not is_issuance)
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    String, BigInteger, Boolean, DateTime, ForeignKey, Enum,
    CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from league_ledger.database import Base


class TransactionCategory(str, enum.Enum):
    PRIZE = "prize"
    TRANSFER = "transfer"
    PENALTY = "penalty"
    SPONSORSHIP = "sponsorship"
    OTHER = "other"


class Transaction(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_positive_amount"),
        CheckConstraint(
            "from_account_id <> to_account_id",
            name="ck_transactions_distinct_accounts",
        ),
        UniqueConstraint(
            "league_id", "idempotency_key",
            name="uq_transactions_league_idempotency_key",
        ),
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

    from_account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )

    to_account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )

    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    category: Mapped[TransactionCategory] = mapped_column(
        Enum(TransactionCategory),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    is_issuance: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    idempotency_key: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    created_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )

    # Indexed for period bucketing and newest-first listings
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
