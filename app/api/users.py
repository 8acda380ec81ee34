"""Self-service user endpoints: register as pending, read own status."""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.api.auth import get_identity, get_user_directory, get_verified_token
from app.core.errors import MissingClaims, NotFound
from app.core.security import VerifiedToken
from app.schemas.auth import Identity
from app.schemas.users import InitResponse, MeResponse
from app.services.identity import display_name_from_claims
from app.services.users import UserDirectory

router = APIRouter()


@router.post("/init", response_model=InitResponse)
def init_user(
    token: Annotated[VerifiedToken, Depends(get_verified_token)],
    identity: Annotated[Identity, Depends(get_identity)],
    directory: Annotated[UserDirectory, Depends(get_user_directory)],
) -> InitResponse:
    """
    Register the caller as a pending user, or refresh email and display name.

    Status is never changed here; the current status is echoed back.
    """
    if not identity.subject or not identity.email:
        raise MissingClaims("token yields no subject or no email")
    display_name = display_name_from_claims(token.claims, identity.email)
    user = directory.upsert_pending(identity.subject, identity.email, display_name)
    return InitResponse(status=user.status)


@router.get("/me", response_model=MeResponse)
def get_me(
    token: Annotated[VerifiedToken, Depends(get_verified_token)],
    directory: Annotated[UserDirectory, Depends(get_user_directory)],
) -> MeResponse:
    """Return the caller's stored record; 404 until /users/init has been called."""
    if not token.subject:
        raise MissingClaims("token has no subject")
    user = directory.get_by_subject(token.subject)
    if user is None:
        raise NotFound(f"no user for subject {token.subject}")
    return MeResponse.model_validate(user, from_attributes=True)
