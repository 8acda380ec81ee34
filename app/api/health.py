"""Health check endpoints: liveness and database connectivity."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db, probe_db
from app.schemas.health import DbHealthResponse, HealthResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=HealthResponse)
def get_health() -> HealthResponse:
    """Liveness; does not touch the database. Used by load balancers."""
    return HealthResponse()


@router.get(
    "/db",
    response_model=DbHealthResponse,
    responses={500: {"description": "Database unreachable"}},
)
def get_db_health(db: Session = Depends(get_db)) -> DbHealthResponse | JSONResponse:
    """Run a trivial query; 500 when the database is unreachable."""
    try:
        info = probe_db(db)
    except SQLAlchemyError as e:
        logger.error("Database health probe failed", extra={"reason": str(e)[:200]})
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": "upstream_unavailable"},
        )
    return DbHealthResponse(now=info.get("now"), user=info.get("user"))
