"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table (create_all, migrations)
  2. Other modules can import from league_ledger.models directly
"""

from league_ledger.models.user import User, Role  # noqa: F401
from league_ledger.models.league import League, LeagueStatus  # noqa: F401
from league_ledger.models.team import Team  # noqa: F401
from league_ledger.models.participant import (  # noqa: F401
    Participant,
    ParticipantRole,
    ParticipantStatus,
)
from league_ledger.models.match import Match, MatchStatus  # noqa: F401
from league_ledger.models.account import Account, OwnerType  # noqa: F401
from league_ledger.models.transaction import Transaction, TransactionCategory  # noqa: F401
from league_ledger.models.permission_history import PermissionHistory, ChangeType  # noqa: F401
