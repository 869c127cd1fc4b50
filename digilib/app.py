from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from digilib.core.config import Settings, get_settings
from digilib.core.errors import ApiError, ErrorKind
from digilib.core.logging_setup import configure_logging
from digilib.db.session import Database
from digilib.routers import admin_accounts as admin_accounts_router
from digilib.routers import admin_catalog as admin_catalog_router
from digilib.routers import admin_resources as admin_resources_router
from digilib.routers import admin_subscriptions as admin_subscriptions_router
from digilib.routers import auth as auth_router
from digilib.routers import portal as portal_router
from digilib.routers import resources as resources_router
from digilib.schemas import field_errors
from digilib.services.storage_service import ObjectStorage, StorageError

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Inject baseline security headers for a JSON API (no framing, no sniffing)."""

    def __init__(self, app, *, enforce_hsts: bool) -> None:
        super().__init__(app)
        self._enforce_hsts = enforce_hsts

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        if self._enforce_hsts:
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return response


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.kind.value, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = ApiError(ErrorKind.VALIDATION, "Invalid input", fields=field_errors(exc))
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def _cors_origins(settings: Settings) -> list[str]:
    allowed = set(settings.cors_origins)
    allowed.add(settings.public_base_url)
    if not settings.is_prod:
        allowed.update(
            {
                "http://localhost:3000",
                "http://127.0.0.1:3000",
                "http://localhost:5173",
                "http://127.0.0.1:5173",
            }
        )
    return sorted(origin for origin in allowed if origin)


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    storage: Optional[ObjectStorage] = None,
) -> FastAPI:
    """Build the API; usable as ``uvicorn digilib.app:create_app --factory``."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_database = database is None
        app.state.database = database or Database.from_settings(settings)
        app.state.storage = storage or ObjectStorage.from_settings(settings)
        if storage is None:
            try:
                app.state.storage.ensure_bucket()
            except StorageError:
                # downloads fail with upstream_failure until the store is reachable
                logger.exception("Object storage bucket check failed at startup")
        logger.info("Digital library API started (env=%s)", settings.app_env)
        try:
            yield
        finally:
            if owns_database:
                app.state.database.dispose()

    app = FastAPI(title="Digital Library API", lifespan=lifespan)
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(settings),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware, enforce_hsts=settings.is_prod)

    @app.get("/healthz")
    def healthz():
        return {"ok": True}

    app.include_router(auth_router.router)
    app.include_router(resources_router.router)
    app.include_router(portal_router.router)
    app.include_router(admin_resources_router.router)
    app.include_router(admin_catalog_router.router)
    app.include_router(admin_accounts_router.router)
    app.include_router(admin_subscriptions_router.router)
    return app
