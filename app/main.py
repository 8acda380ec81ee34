"""FastAPI application entrypoint. No business logic; only wiring, middleware and error rendering."""

from dotenv import load_dotenv

load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api import debug_router, health_router, router as api_router
from app.core.config import Settings, get_settings
from app.core.cors import add_cors
from app.core.database import create_db_engine, create_session_factory
from app.core.errors import ApiError
from app.core.security import TokenVerifier

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

_HTTP_ERROR_CODES = {
    404: "not_found",
    405: "method_not_allowed",
}


def _error_response(status_code: int, error: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error}, headers=headers)


async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Request failed",
        extra={
            "path": request.url.path,
            "error_code": exc.error,
            "status_code": exc.status_code,
            "reason": exc.detail[:200],
        },
    )
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return _error_response(exc.status_code, exc.error, headers)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(400, "invalid_request")


async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(
        exc.status_code,
        _HTTP_ERROR_CODES.get(exc.status_code, "http_error"),
        getattr(exc, "headers", None),
    )


async def handle_db_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(
        "Database error",
        extra={"path": request.url.path, "reason": str(exc)[:200]},
    )
    return _error_response(500, "upstream_unavailable")


async def catch_unhandled(request: Request, call_next):
    """Render unexpected exceptions as JSON inside the CORS middleware."""
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled error", extra={"path": request.url.path})
        return _error_response(500, "server_error")


def _log_missing_settings(settings: Settings) -> None:
    missing = settings.missing_auth_settings()
    if missing:
        message = "Missing required auth settings: %s. Token verification will fail."
        if settings.APP_ENV == "prod":
            logger.error(message, ", ".join(missing))
            raise RuntimeError(f"Missing required auth settings: {', '.join(missing)}")
        logger.warning(message, ", ".join(missing))
    if not settings.ADMIN_EMAIL:
        logger.warning("ADMIN_EMAIL is not set; admin endpoints will deny every caller.")
    if not settings.FRONTEND_ORIGIN:
        logger.warning("FRONTEND_ORIGIN is not set; only localhost and preview origins pass CORS.")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logger.info(
        "Starting up",
        extra={
            "app_env": settings.APP_ENV,
            "jwks_url": settings.jwks_url,
            "issuers": ",".join(settings.allowed_issuers),
        },
    )
    yield
    await app.state.verifier.close()
    if app.state.engine is not None:
        app.state.engine.dispose()
    logger.info("Shutdown complete")


def create_app(
    settings: Settings | None = None,
    *,
    session_factory: sessionmaker[Session] | None = None,
    verifier: TokenVerifier | None = None,
) -> FastAPI:
    """
    Build the application from an explicit Settings instance.

    session_factory and verifier may be injected (tests); otherwise they are
    built from settings.
    """
    settings = settings or get_settings()
    _log_missing_settings(settings)

    app = FastAPI(
        title="Gatekeeper API",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url=None,
    )

    engine = None
    if session_factory is None:
        engine = create_db_engine(settings)
        session_factory = create_session_factory(engine)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.verifier = verifier or TokenVerifier.from_settings(settings)

    app.add_exception_handler(ApiError, handle_api_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(SQLAlchemyError, handle_db_error)

    # Registered before CORS so CORS stays outermost and decorates error responses too.
    app.middleware("http")(catch_unhandled)
    add_cors(app, settings)

    app.include_router(health_router, prefix="/health", tags=["health"])
    app.include_router(api_router, prefix=settings.API_PREFIX)
    if settings.DEBUG:
        app.include_router(debug_router, prefix="/debug", tags=["debug"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=get_settings().PORT)
