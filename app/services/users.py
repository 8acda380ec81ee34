"""User directory: approval status per subject, with an audit row for every change."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import USER_STATUSES, AppUser, AppUserAudit

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 200

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class UserNotFoundError(Exception):
    """Raised when a status change targets a subject with no app_user row."""

    def __init__(self, subject: str) -> None:
        self.subject = subject
        self.message = f"No user with subject {subject!r}"
        super().__init__(self.message)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserDirectory:
    """
    Store operations over app_user and app_user_audit.

    Every mutation is one row-locking statement plus its audit row, committed
    together; on any database error the session is rolled back and nothing is kept.
    """

    def __init__(self, session: Session, list_limit: int = DEFAULT_LIST_LIMIT) -> None:
        self.session = session
        self.list_limit = list_limit

    def _insert(self):
        dialect = self.session.get_bind().dialect.name
        try:
            return _INSERT_BY_DIALECT[dialect]
        except KeyError:
            raise RuntimeError(f"Upsert is not supported on dialect {dialect!r}") from None

    def _audit(
        self,
        subject: str,
        action: str,
        actor: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.session.add(
            AppUserAudit(
                subject=subject,
                action=action,
                actor=actor,
                details=details,
                created_at=_utcnow(),
            )
        )

    def _reload(self, subject: str) -> AppUser:
        stmt = (
            select(AppUser)
            .where(AppUser.subject == subject)
            .execution_options(populate_existing=True)
        )
        return self.session.scalars(stmt).one()

    def upsert_pending(self, subject: str, email: str, display_name: str | None) -> AppUser:
        """
        Insert subject as pending, or refresh email/display_name if it exists.

        status is never changed here. Appends a 'created' or 'updated' audit row.
        """
        users = AppUser.__table__
        now = _utcnow()
        new_id = uuid.uuid4()
        insert = self._insert()
        stmt = insert(users).values(
            id=new_id,
            subject=subject,
            email=email,
            display_name=display_name,
            status="pending",
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[users.c.subject],
            set_={
                "email": stmt.excluded.email,
                "display_name": stmt.excluded.display_name,
                "updated_at": stmt.excluded.updated_at,
            },
        ).returning(users.c.id, users.c.status)

        try:
            row = self.session.execute(stmt).one()
            # On conflict the existing id is kept, so a matching id means a fresh insert.
            action = "created" if row.id == new_id else "updated"
            self._audit(subject, action, details={"email": email, "name": display_name})
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

        logger.info(
            "User self-registered",
            extra={"subject": subject, "audit_action": action, "user_status": row.status},
        )
        return self._reload(subject)

    def get_by_subject(self, subject: str) -> AppUser | None:
        return self.session.scalars(
            select(AppUser).where(AppUser.subject == subject)
        ).first()

    def email_for_subject(self, subject: str) -> str:
        """Stored email for subject, or '' if there is no row."""
        email = self.session.scalar(
            select(AppUser.email).where(AppUser.subject == subject).limit(1)
        )
        return email or ""

    def set_status(self, subject: str, status: str, actor: str | None) -> AppUser:
        """
        Set status and append one audit row with action=status.

        Re-applying the current status still succeeds and still appends an audit row.
        Raises UserNotFoundError, writing nothing, if subject has no row.
        """
        if status not in USER_STATUSES:
            raise ValueError(f"Unknown status {status!r}")
        users = AppUser.__table__
        stmt = (
            update(users)
            .where(users.c.subject == subject)
            .values(status=status, updated_at=_utcnow())
            .returning(users.c.id)
        )
        try:
            row = self.session.execute(stmt).first()
            if row is None:
                self.session.rollback()
                raise UserNotFoundError(subject)
            self._audit(subject, status, actor=actor, details={"status": status})
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

        logger.info(
            "User status changed",
            extra={"subject": subject, "user_status": status, "actor": actor},
        )
        return self._reload(subject)

    def list_users(self, status: str | None = None) -> list[AppUser]:
        """Most recently created first, optionally filtered by exact status, capped at list_limit."""
        stmt = select(AppUser)
        if status:
            stmt = stmt.where(AppUser.status == status)
        stmt = stmt.order_by(AppUser.created_at.desc(), AppUser.id).limit(self.list_limit)
        return list(self.session.scalars(stmt).all())

    def audit_trail(self, subject: str) -> list[AppUserAudit]:
        """Audit rows for subject, oldest first."""
        stmt = (
            select(AppUserAudit)
            .where(AppUserAudit.subject == subject)
            .order_by(AppUserAudit.id)
        )
        return list(self.session.scalars(stmt).all())
