"""
User model — the authentication identity and privilege record.

Each User is a login credential (email + hashed password) plus the
authority it carries:

  - role: USER, STAFF or ADMIN
  - permissions: permission codes, only meaningful for STAFF
    (ADMIN implicitly holds everything, USER holds nothing)
  - version: optimistic-concurrency token, incremented on every successful
    role or permission change

role, permissions and version are mutated only by the privilege service,
which compares and increments version in a single conditional UPDATE.
At least one ADMIN must exist at all times.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, String, Boolean, Integer, DateTime, Enum
from sqlalchemy.orm import Mapped, mapped_column

from league_ledger.database import Base


class Role(str, enum.Enum):
    """
    Platform-wide role of a user.

    Inherits from str so the value serializes naturally to JSON and is
    stored as a plain string.
    """
    USER = "USER"     # Regular member — league participation only
    STAFF = "STAFF"   # Operator — capabilities granted through permissions
    ADMIN = "ADMIN"   # Administrator — every capability


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # Login identifier — unique and indexed for fast lookups
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )

    # Argon2id hash of the password
    hashed_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Public display name, shown as owner_name of participant accounts
    nickname: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    role: Mapped[Role] = mapped_column(
        Enum(Role),
        default=Role.USER,
        nullable=False,
        index=True,
    )

    # Sorted list of permission codes
    permissions: Mapped[list[str]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        default=1,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
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
