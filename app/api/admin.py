"""Admin endpoints: list users and approve or reject them. All require the administrator."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from app.api.auth import get_user_directory, require_admin
from app.core.errors import InvalidRequest, NotFound
from app.models import USER_STATUSES
from app.schemas.auth import Identity
from app.schemas.users import OkResponse, UserOut, UsersListResponse
from app.services.users import UserDirectory, UserNotFoundError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/users", response_model=UsersListResponse)
def list_users(
    _admin: Annotated[Identity, Depends(require_admin)],
    directory: Annotated[UserDirectory, Depends(get_user_directory)],
    status: Annotated[str | None, Query(description="pending, approved or rejected")] = None,
) -> UsersListResponse:
    """List users, newest first, optionally filtered by status (admin only)."""
    status_filter = (status or "").strip().lower() or None
    if status_filter is not None and status_filter not in USER_STATUSES:
        raise InvalidRequest(f"unknown status {status!r}")
    users = directory.list_users(status_filter)
    return UsersListResponse(users=[UserOut.model_validate(u) for u in users])


def _set_status(directory: UserDirectory, subject: str, status: str, admin: Identity) -> OkResponse:
    try:
        directory.set_status(subject, status, actor=admin.email)
    except UserNotFoundError as e:
        raise NotFound(e.message) from e
    logger.info(
        "Admin action applied",
        extra={"subject": subject, "user_status": status, "actor": admin.email},
    )
    return OkResponse()


@router.post("/users/{subject}/approve", response_model=OkResponse)
def approve_user(
    subject: str,
    admin: Annotated[Identity, Depends(require_admin)],
    directory: Annotated[UserDirectory, Depends(get_user_directory)],
) -> OkResponse:
    """Approve a user. Unknown subjects answer 404 and write nothing."""
    return _set_status(directory, subject, "approved", admin)


@router.post("/users/{subject}/reject", response_model=OkResponse)
def reject_user(
    subject: str,
    admin: Annotated[Identity, Depends(require_admin)],
    directory: Annotated[UserDirectory, Depends(get_user_directory)],
) -> OkResponse:
    """Reject a user. Unknown subjects answer 404 and write nothing."""
    return _set_status(directory, subject, "rejected", admin)
