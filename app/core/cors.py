"""CORS allow-list: canonical front-end origin, localhost, and preview-deployment hosts."""

import re

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import Settings

CORS_METHODS = ["GET", "POST", "OPTIONS"]
CORS_HEADERS = ["Authorization", "Content-Type"]
CORS_MAX_AGE = 600


def origin_regex(settings: Settings) -> str | None:
    """Regex for origins allowed besides FRONTEND_ORIGIN, or None if there are none."""
    patterns: list[str] = []
    if settings.CORS_ALLOW_LOCALHOST:
        patterns.append(r"http://(?:localhost|127\.0\.0\.1):\d{1,5}")
    if settings.CORS_PREVIEW_SUFFIX:
        patterns.append(
            r"https://(?:[a-z0-9-]+\.)+" + re.escape(settings.CORS_PREVIEW_SUFFIX)
        )
    if not patterns:
        return None
    return "^(?:" + "|".join(patterns) + ")$"


def add_cors(app: FastAPI, settings: Settings) -> None:
    """Attach CORSMiddleware; disallowed origins get no CORS headers at all."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_ORIGIN] if settings.FRONTEND_ORIGIN else [],
        allow_origin_regex=origin_regex(settings),
        allow_credentials=False,
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
        max_age=CORS_MAX_AGE,
    )
