"""SQLAlchemy declarative Base for the approval-workflow tables."""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# Index names must match the Alembic revisions (e.g. ix_app_user_subject).
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
}


class Base(DeclarativeBase):
    """Declarative base shared by AppUser and AppUserAudit."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
