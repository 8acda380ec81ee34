"""Schemas for the resolved caller identity and auth diagnostics."""

from typing import Any

from pydantic import BaseModel, Field


class Identity(BaseModel):
    """Caller identity derived from a verified token."""

    subject: str = Field(description="sub claim; empty if the token had none")
    email: str = Field(description="Resolved, lower-cased email-like identifier; may be empty")
    claims: dict[str, Any] = Field(default_factory=dict, repr=False)


class PingResponse(BaseModel):
    ok: bool = True
    sub: str
    username: str
    scope: str | None = None


class WhoAmIResponse(BaseModel):
    """Debug view of how the API sees the caller."""

    ok: bool = True
    sub: str | None
    preferred_username: str | None
    derived_email: str
    is_admin: bool
    kid: str
    matched_issuer: str
    claims: dict[str, Any]


class ErrorResponse(BaseModel):
    error: str
