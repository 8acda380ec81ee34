"""Auth dependencies (token verification, identity, admin gate) and auth diagnostics routes."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.database import get_db
from app.core.errors import Forbidden
from app.core.security import TokenVerifier, VerifiedToken, claims_view
from app.schemas.auth import Identity, PingResponse, WhoAmIResponse
from app.services.authorization import is_admin
from app.services.identity import resolve_email
from app.services.users import UserDirectory

logger = logging.getLogger(__name__)

router = APIRouter()
debug_router = APIRouter()
security = HTTPBearer(auto_error=False, description="Access token from Entra External ID")


def get_app_settings(request: Request) -> Settings:
    """Dependency: the Settings instance the app was created with."""
    return request.app.state.settings


def get_verifier(request: Request) -> TokenVerifier:
    return request.app.state.verifier


def get_user_directory(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> UserDirectory:
    return UserDirectory(db, list_limit=settings.LIST_USERS_LIMIT)


async def get_verified_token(
    request: Request,
    verifier: Annotated[TokenVerifier, Depends(get_verifier)],
    _credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> VerifiedToken:
    """
    Dependency: require a valid Bearer access token. Raises MissingToken or InvalidToken.

    `security` only declares the scheme in OpenAPI; the raw header is parsed by the verifier.
    """
    return await verifier.verify(request.headers.get("Authorization"))


def get_identity(
    token: Annotated[VerifiedToken, Depends(get_verified_token)],
    directory: Annotated[UserDirectory, Depends(get_user_directory)],
) -> Identity:
    """Dependency: subject and resolved email; falls back to the stored email by subject."""
    email = resolve_email(token.claims, directory.email_for_subject)
    return Identity(subject=token.subject, email=email, claims=token.claims)


def require_admin(
    identity: Annotated[Identity, Depends(get_identity)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> Identity:
    """Dependency: require the configured administrator. Raises Forbidden otherwise."""
    if not is_admin(identity.email, settings.ADMIN_EMAIL):
        logger.warning(
            "Admin access denied",
            extra={"sub": identity.subject, "actor": identity.email or None},
        )
        raise Forbidden("caller is not the administrator")
    return identity


@router.get("/ping", response_model=PingResponse)
def ping(
    token: Annotated[VerifiedToken, Depends(get_verified_token)],
    identity: Annotated[Identity, Depends(get_identity)],
) -> PingResponse:
    """Protected ping: echoes the caller's subject, resolved username and scopes."""
    scp = token.claims.get("scp")
    return PingResponse(
        sub=identity.subject,
        username=identity.email,
        scope=scp if isinstance(scp, str) else None,
    )


@debug_router.get("/whoami", response_model=WhoAmIResponse)
def whoami(
    token: Annotated[VerifiedToken, Depends(get_verified_token)],
    identity: Annotated[Identity, Depends(get_identity)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> WhoAmIResponse:
    """How the API sees the caller. Only mounted when DEBUG is on."""
    preferred = token.claims.get("preferred_username")
    return WhoAmIResponse(
        sub=identity.subject or None,
        preferred_username=preferred if isinstance(preferred, str) else None,
        derived_email=identity.email,
        is_admin=is_admin(identity.email, settings.ADMIN_EMAIL),
        kid=token.kid,
        matched_issuer=token.matched_issuer,
        claims=claims_view(token.claims),
    )
