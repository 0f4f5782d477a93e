"""
PermissionHistory model — append-only audit log of privilege changes.

Every successful role or permission mutation writes one row in the same
database transaction as the change itself. Rows are never updated or
deleted, mirroring the transaction ledger.

old_value / new_value hold a role string for ROLE changes and a list of
permission codes for PERMISSION changes.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, ForeignKey, Enum
from sqlalchemy.orm import Mapped, mapped_column

from league_ledger.database import Base


class ChangeType(str, enum.Enum):
    ROLE = "ROLE"
    PERMISSION = "PERMISSION"


class PermissionHistory(Base):
    __tablename__ = "permission_history"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # NULL when the change was made by an operator script
    changer_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
        index=True,
    )

    target_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    change_type: Mapped[ChangeType] = mapped_column(
        Enum(ChangeType),
        nullable=False,
    )

    old_value: Mapped[object] = mapped_column(JSON, nullable=True)
    new_value: Mapped[object] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
