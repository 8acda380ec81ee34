"""ORM model for application users and their approval status."""

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Index, String, Uuid, func

from app.models.base import Base

USER_STATUSES = ("pending", "approved", "rejected")


class AppUser(Base):
    """
    One row per identity-platform subject.

    status: 'pending' on first self-registration; changed only by an admin.
    """

    __tablename__ = "app_user"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    subject = Column(String(255), nullable=False, unique=True, index=True)
    email = Column(String(320), nullable=False)
    display_name = Column(String(255), nullable=True)
    status = Column(String(16), nullable=False, default="pending", server_default="pending")
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_app_user_status",
        ),
        Index("ix_app_user_status_created_at", "status", "created_at"),
    )
