"""
Permission catalogue and capability checks.

A user's effective capabilities come from its role:
  - ADMIN: every permission (the "*" wildcard is implied)
  - STAFF: exactly the permission codes stored on the user
  - USER:  none

Route dependencies and the services both call has_permission() with the
actor they were given, so the same rule is applied at every entry point.
"""

import enum
from typing import Iterable

from league_ledger.models.user import Role, User


class Permission(str, enum.Enum):
    # User management
    USER_VIEW = "user.view"
    USER_MANAGE = "user.manage"
    USER_ROLE_CHANGE = "user.role.change"
    USER_PERMISSION_EDIT = "user.permission.edit"
    # News
    NEWS_CREATE = "news.create"
    NEWS_PUBLISH = "news.publish"
    NEWS_EDIT = "news.edit"
    NEWS_DELETE = "news.delete"
    # Funds
    FUND_VIEW = "fund.view"
    FUND_MANAGE = "fund.manage"
    # Matches
    MATCH_EDIT = "match.edit"
    MATCH_RESULT = "match.result"
    # Leagues
    LEAGUE_CREATE = "league.create"
    LEAGUE_EDIT = "league.edit"
    LEAGUE_DELETE = "league.delete"


WILDCARD = "*"

# (code, name, description, category)
PERMISSION_INFO: list[tuple[Permission, str, str, str]] = [
    (Permission.USER_VIEW, "View users", "List users in the admin console", "user"),
    (Permission.USER_MANAGE, "Manage users", "Edit user details", "user"),
    (Permission.USER_ROLE_CHANGE, "Change role", "Change a user's role", "user"),
    (Permission.USER_PERMISSION_EDIT, "Edit permissions", "Grant or revoke permissions", "user"),
    (Permission.NEWS_CREATE, "Write news", "Create news articles", "news"),
    (Permission.NEWS_PUBLISH, "Publish news", "Publish news articles", "news"),
    (Permission.NEWS_EDIT, "Edit news", "Edit news articles", "news"),
    (Permission.NEWS_DELETE, "Delete news", "Delete news articles", "news"),
    (Permission.FUND_VIEW, "View funds", "View team finances", "fund"),
    (Permission.FUND_MANAGE, "Manage funds", "Create league transactions", "fund"),
    (Permission.MATCH_EDIT, "Edit matches", "Edit match information", "match"),
    (Permission.MATCH_RESULT, "Enter results", "Enter match results", "match"),
    (Permission.LEAGUE_CREATE, "Create leagues", "Create a new league", "league"),
    (Permission.LEAGUE_EDIT, "Edit leagues", "Edit league information", "league"),
    (Permission.LEAGUE_DELETE, "Delete leagues", "Delete a league", "league"),
]

ROLE_INFO: list[tuple[Role, str, str]] = [
    (Role.USER, "User", "Default member access"),
    (Role.STAFF, "Staff", "Admin console access limited to granted permissions"),
    (Role.ADMIN, "Administrator", "Every permission"),
]


def is_valid_permission(code: str) -> bool:
    if code == WILDCARD:
        return True
    try:
        Permission(code)
    except ValueError:
        return False
    return True


def has_permission(user: User, required: Permission) -> bool:
    """Return True if the user's role and stored codes grant `required`."""
    if user.role == Role.ADMIN:
        return True
    if user.role != Role.STAFF:
        return False
    granted = user.permissions or []
    return WILDCARD in granted or required.value in granted


def has_any_permission(user: User, required: Iterable[Permission]) -> bool:
    return any(has_permission(user, perm) for perm in required)


def can_manage_funds(user: User) -> bool:
    """Admin-capable finance actor: ADMIN, or STAFF holding fund.manage."""
    return has_permission(user, Permission.FUND_MANAGE)
