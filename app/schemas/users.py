"""Request/response schemas for self-service and admin user endpoints."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

UserStatus = Literal["pending", "approved", "rejected"]


class UserOut(BaseModel):
    """Stored app_user record as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    subject: str
    email: str
    display_name: str | None = None
    status: UserStatus
    created_at: datetime
    updated_at: datetime


class InitResponse(BaseModel):
    """Response for POST /users/init."""

    ok: Literal[True] = True
    status: UserStatus = Field(description="Current approval status of the caller")


class MeResponse(UserOut):
    """Response for GET /users/me: the caller's own record."""

    ok: Literal[True] = True


class UsersListResponse(BaseModel):
    """Response for GET /admin/users (admin only)."""

    ok: Literal[True] = True
    users: list[UserOut]


class OkResponse(BaseModel):
    ok: Literal[True] = True
