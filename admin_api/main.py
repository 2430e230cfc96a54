# admin_api/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from admin_api.api.v1.auth import router as auth_router
from admin_api.api.v1.crud_routes import router as crud_router
from admin_api.api.v1.routes import router as public_router
from admin_api.api.v1.uploads import router as uploads_router
from admin_api.core.config import Settings, settings as default_settings
from admin_api.core.errors import register_error_handlers
from admin_api.core.http import FixedWindowRateLimiter, install_http_policies
from admin_api.services.container import AppServices, build_services

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, services: Optional[AppServices] = None) -> FastAPI:
    settings = settings or default_settings
    logging.basicConfig(level=settings.LOG_LEVEL.upper())

    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Admin API started (env=%s, storage=%s)", settings.APP_ENV, services.store.backend.name)
        yield
        await services.close()

    app = FastAPI(title="SNG Admin API", lifespan=lifespan)
    app.state.services = services
    app.state.login_limiter = FixedWindowRateLimiter(
        settings.LOGIN_RATE_LIMIT_ATTEMPTS, settings.LOGIN_RATE_LIMIT_WINDOW_SEC
    )

    prefix = settings.API_PREFIX.rstrip("/")
    # auth routes first: they must stay reachable without a bearer token
    app.include_router(auth_router, prefix=prefix)
    app.include_router(public_router, prefix=prefix)
    app.include_router(uploads_router, prefix=prefix)
    app.include_router(crud_router, prefix=prefix)

    register_error_handlers(app)
    install_http_policies(
        app,
        settings.allowed_origins,
        FixedWindowRateLimiter(settings.RATE_LIMIT_REQUESTS, settings.RATE_LIMIT_WINDOW_SEC),
    )
    return app


app = create_app()
