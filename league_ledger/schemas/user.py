"""
Pydantic schemas for users and privilege management.

hashed_password is never part of any response schema.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from league_ledger.models.permission_history import ChangeType
from league_ledger.models.user import Role


class UserResponse(BaseModel):
    """Admin view of a User, including the version token for edits."""
    id: uuid.UUID
    email: EmailStr
    nickname: str
    role: Role
    permissions: list[str]
    version: int
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class UserListResponse(BaseModel):
    users: list[UserResponse]
    total: int
    page: int
    total_pages: int


class RoleUpdateRequest(BaseModel):
    """Request body for PUT /admin/users/{id}/role."""
    role: str
    version: int = Field(ge=1, description="Version the caller last read")


class PermissionsUpdateRequest(BaseModel):
    """Request body for PUT /admin/users/{id}/permissions."""
    permissions: list[str]
    version: int = Field(ge=1, description="Version the caller last read")


class PrivilegeUpdateResponse(BaseModel):
    message: str
    new_version: int


class PermissionHistoryResponse(BaseModel):
    id: uuid.UUID
    changer_id: uuid.UUID | None
    changer_nickname: str | None
    target_id: uuid.UUID
    target_nickname: str
    change_type: ChangeType
    old_value: str | list[str] | None
    new_value: str | list[str] | None
    created_at: datetime


class PermissionHistoryPageResponse(BaseModel):
    history: list[PermissionHistoryResponse]
    total: int
    page: int
    total_pages: int


class PermissionInfo(BaseModel):
    code: str
    name: str
    description: str
    category: str


class RoleInfo(BaseModel):
    code: str
    name: str
    description: str


class PermissionCatalogResponse(BaseModel):
    permissions: list[PermissionInfo]
    roles: list[RoleInfo]


class UserStatsResponse(BaseModel):
    total_users: int
    users_by_role: dict[str, int]
