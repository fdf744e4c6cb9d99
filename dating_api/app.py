"""Application factory: composition of stores, services, scheduler and routers."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from dating_api.core.config import Settings, get_settings
from dating_api.core.rate_limiter import SlidingWindowLimiter
from dating_api.core.scheduler import IntervalScheduler
from dating_api.domain.quota import QuotaPolicy, QuotaValidationError
from dating_api.repositories.quota_store import QuotaStore, SQLQuotaStore, StoreError
from dating_api.repositories.sql_repository import SQLRepository
from dating_api.routers import auth as auth_router
from dating_api.routers import quota as quota_router
from dating_api.routers import users as users_router
from dating_api.services.auth_service import AuthService
from dating_api.services.quota_service import QuotaService
from dating_api.services.user_service import UserService

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Inject baseline security headers on every JSON response."""

    def __init__(self, app, *, enforce_hsts: bool) -> None:
        super().__init__(app)
        self._enforce_hsts = enforce_hsts

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault("Cache-Control", "no-store")
        if self._enforce_hsts:
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return response


@asynccontextmanager
async def _lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    scheduler: IntervalScheduler = app.state.quota_scheduler
    if settings.quota_scheduler_enabled:
        scheduler.start()
    else:
        logger.info("Quota reset scheduler disabled by QUOTA_SCHEDULER_ENABLED")
    try:
        yield
    finally:
        if scheduler.running:
            scheduler.stop()


def create_app(settings: Optional[Settings] = None, *, quota_store: Optional[QuotaStore] = None) -> FastAPI:
    """Factory compatible with uvicorn --factory."""
    settings = settings or get_settings()

    repository = SQLRepository()
    policy = QuotaPolicy(
        capacity=settings.quota_daily_capacity,
        interval=timedelta(seconds=settings.quota_window_seconds),
    )
    quota_service = QuotaService(
        quota_store or SQLQuotaStore(),
        policy,
        repository.user_exists,
        max_retries=settings.quota_max_retries,
    )
    scheduler = IntervalScheduler(
        quota_service.reset_all_due,
        settings.quota_reset_interval_seconds,
        name="daily-quota-reset",
    )

    app = FastAPI(title="Dating API", lifespan=_lifespan)
    app.state.settings = settings
    app.state.auth_service = AuthService()
    app.state.quota_service = quota_service
    app.state.user_service = UserService(quota_service, repository)
    app.state.quota_scheduler = scheduler
    app.state.rate_limiter = SlidingWindowLimiter()

    allowed_cors = {settings.public_base_url}
    if settings.app_env != "prod":
        allowed_cors.update({"http://localhost:8000", "http://127.0.0.1:8000", "http://localhost:5173"})
    allowed_cors = {origin for origin in allowed_cors if origin}
    if allowed_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=sorted(allowed_cors),
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "OPTIONS"],
            allow_headers=["*"],
        )
    app.add_middleware(SecurityHeadersMiddleware, enforce_hsts=settings.app_env == "prod")

    @app.exception_handler(StoreError)
    async def _store_error(request: Request, exc: StoreError):
        logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "Storage temporarily unavailable"})

    @app.exception_handler(QuotaValidationError)
    async def _quota_validation_error(request: Request, exc: QuotaValidationError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.get("/health")
    def health():
        return {"ok": True, "scheduler_running": scheduler.running, "scheduler_runs": scheduler.runs}

    app.include_router(auth_router.router)
    app.include_router(users_router.router)
    app.include_router(quota_router.router)
    return app
