"""
Common FastAPI application assembly

Each service factory calls build_app() and then attaches its own
collaborators to app.state. Collaborators are attached eagerly, not in the
lifespan hook, so an app works under httpx.ASGITransport in tests.
"""
import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from storefront.api.routes import health
from storefront.core.config import settings
from storefront.core.database import dispose_engine, get_engine, init_models
from storefront.core.error_handler import ErrorSanitizationMiddleware, register_exception_handlers
from storefront.core.logging_config import configure_logging
from storefront.core.rate_limit import limiter, rate_limit_exceeded_handler
from storefront.core.request_logging import RequestLoggingMiddleware
from storefront.core.security_headers import SecurityHeadersMiddleware

logger = logging.getLogger(__name__)

StartupHook = Callable[[], Awaitable[None]]


def build_lifespan(tables=None, startup: Iterable[StartupHook] = (), shutdown: Iterable[StartupHook] = ()):
    """
    Lifespan for a service: create its tables when backed by PostgreSQL, run
    extra startup hooks (seeding), and close clients / the engine on exit.
    """
    startup = list(startup)
    shutdown = list(shutdown)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.storage_backend == "postgres" and tables:
            await init_models(get_engine(), tables)
        for hook in startup:
            await hook()
        logger.info("%s service started (storage=%s)", app.state.service_name, app.state.storage_backend)

        yield

        for hook in shutdown:
            try:
                await hook()
            except Exception as e:
                logger.warning("Shutdown hook failed: %s", e)
        if app.state.storage_backend == "postgres":
            await dispose_engine()
        logger.info("%s service stopped", app.state.service_name)

    return lifespan


def build_app(
    service_name: str,
    title: str,
    routers: List[Tuple[APIRouter, str, str]],
    lifespan=None,
    storage_backend: Optional[str] = None,
) -> FastAPI:
    configure_logging()

    app = FastAPI(
        title=title,
        version=settings.APP_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.service_name = service_name
    app.state.storage_backend = storage_backend or settings.STORAGE_BACKEND
    app.state.health_checks = []

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    register_exception_handlers(app)

    app.add_middleware(ErrorSanitizationMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # outermost, so the logged status is what the client actually received
    app.add_middleware(RequestLoggingMiddleware, service_name=service_name)

    app.include_router(health.router, tags=["Health"])
    for router, prefix, tag in routers:
        app.include_router(router, prefix=prefix, tags=[tag])

    return app
