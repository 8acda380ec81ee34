"""Pydantic request/response schemas."""

from app.schemas.auth import ErrorResponse, Identity, PingResponse, WhoAmIResponse
from app.schemas.health import DbHealthResponse, HealthResponse
from app.schemas.users import (
    InitResponse,
    MeResponse,
    OkResponse,
    UserOut,
    UsersListResponse,
    UserStatus,
)

__all__ = [
    "DbHealthResponse",
    "ErrorResponse",
    "HealthResponse",
    "Identity",
    "InitResponse",
    "MeResponse",
    "OkResponse",
    "PingResponse",
    "UserOut",
    "UserStatus",
    "UsersListResponse",
    "WhoAmIResponse",
]
