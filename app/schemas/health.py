"""Pydantic schemas for health check responses."""

from typing import Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response body for the liveness endpoint."""

    ok: Literal[True] = True


class DbHealthResponse(BaseModel):
    """Response body for the database connectivity probe."""

    ok: Literal[True] = True
    database: Literal["connected"] = "connected"
    now: str | None = Field(default=None, description="Database server time (Postgres only)")
    user: str | None = Field(default=None, description="Connected database role (Postgres only)")
