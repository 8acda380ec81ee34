"""ORM model for the append-only user audit log."""

from sqlalchemy import JSON, BigInteger, Column, DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB

from app.models.base import Base

AUDIT_ACTIONS = ("created", "updated", "approved", "rejected")


class AppUserAudit(Base):
    """
    One row per lifecycle event of an app_user. Rows are never updated or deleted.

    actor is the administrator's email, or NULL for self-service events.
    """

    __tablename__ = "app_user_audit"

    id = Column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    subject = Column(String(255), nullable=False, index=True)
    action = Column(String(32), nullable=False)
    actor = Column(String(320), nullable=True)
    details = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
