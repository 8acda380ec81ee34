"""PostgreSQL engine and session factory."""

from collections.abc import Generator

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import Settings


def create_db_engine(settings: Settings) -> Engine:
    """Build a pooled engine with connect and statement timeouts for Postgres."""
    url = settings.database_url
    if make_url(url).get_backend_name() == "sqlite":
        return create_engine(url, echo=settings.DEBUG)
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT_SEC,
        echo=settings.DEBUG,
        connect_args={
            "connect_timeout": settings.DB_CONNECT_TIMEOUT_SEC,
            "options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}",
        },
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db(request: Request) -> Generator[Session, None, None]:
    """Dependency that yields a DB session and closes it when done."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def probe_db(db: Session) -> dict[str, str]:
    """Run a trivial query to verify the database is reachable; raises on failure."""
    if db.get_bind().dialect.name == "postgresql":
        row = db.execute(text("SELECT now() AS now, current_user AS usr")).one()
        return {"now": row.now.isoformat(), "user": row.usr}
    db.execute(text("SELECT 1"))
    return {}
