"""FastAPI application factory.

Run with uvicorn:
    uvicorn --factory inbox_health.api.app:create_app
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from inbox_health.api import auth, emails, tags
from inbox_health.api.deps import Services
from inbox_health.cache import Cache, create_cache
from inbox_health.config import Settings, get_settings
from inbox_health.exceptions import InboxHealthError, TagNotFound, UserNotFound
from inbox_health.gmail import GmailClient
from inbox_health.google import GoogleOAuth
from inbox_health.store import Database

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    db: Database | None = None,
    cache: Cache | None = None,
    oauth_factory: Callable[[list[str] | None], GoogleOAuth] | None = None,
    client_factory: Callable[[str], GmailClient] = GmailClient,
) -> FastAPI:
    """Build the dashboard API.

    Args:
        settings: Service settings. Defaults to get_settings().
        db: Database. Defaults to one at ``settings.database_url``.
        cache: Cache. Defaults to the ``settings.cache_backend`` backend.
        oauth_factory: Builds GoogleOAuth for a scope list. Defaults to one
            reading client credentials from settings.
        client_factory: Builds a GmailClient from an access token.
    """
    settings = settings or get_settings()
    db = db or Database(settings.database_url)
    db.create_all()
    cache = cache or create_cache(settings.cache_backend, db)

    app = FastAPI(title="inbox-health", version="0.1.0")
    app.state.services = Services(
        settings=settings,
        db=db,
        cache=cache,
        oauth_factory=oauth_factory,
        client_factory=client_factory,
    )

    app.include_router(auth.router)
    app.include_router(emails.router)
    app.include_router(tags.router)

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError):
        logger.debug(f"Invalid request to {request.url.path}: {exc.errors()}")
        return JSONResponse({"error": "Invalid request body"}, status_code=400)

    @app.exception_handler(UserNotFound)
    @app.exception_handler(TagNotFound)
    async def not_found(request: Request, exc: InboxHealthError):
        return JSONResponse({"error": str(exc)}, status_code=404)

    @app.exception_handler(ValueError)
    async def bad_value(request: Request, exc: ValueError):
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(InboxHealthError)
    async def service_error(request: Request, exc: InboxHealthError):
        logger.error(f"Error handling {request.url.path}: {exc}")
        return JSONResponse({"error": str(exc)}, status_code=500)

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception(f"Unexpected error handling {request.url.path}")
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    return app
