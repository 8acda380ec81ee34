"""API routes."""

from fastapi import APIRouter

from app.api import admin, auth, health, users
from app.schemas.auth import ErrorResponse

# Documented failure bodies shared by every authenticated route.
AUTH_ERROR_RESPONSES = {
    401: {"model": ErrorResponse, "description": "Missing or invalid bearer token"},
    500: {"model": ErrorResponse, "description": "Identity platform or database unavailable"},
}

router = APIRouter(responses=AUTH_ERROR_RESPONSES)
router.include_router(auth.router, tags=["auth"])
router.include_router(users.router, prefix="/users", tags=["users"])
router.include_router(
    admin.router,
    prefix="/admin",
    tags=["admin"],
    responses={403: {"model": ErrorResponse, "description": "Caller is not the administrator"}},
)

health_router = health.router
debug_router = auth.debug_router

__all__ = ["router", "health_router", "debug_router"]
