"""SQLAlchemy ORM models."""

from app.models.audit import AUDIT_ACTIONS, AppUserAudit
from app.models.base import Base
from app.models.user import USER_STATUSES, AppUser

__all__ = ["AUDIT_ACTIONS", "AppUser", "AppUserAudit", "Base", "USER_STATUSES"]
