import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from newsroom.config import settings
from newsroom.errors import register_exception_handlers
from newsroom.metrics import MetricsCollector
from newsroom.middleware import RequestLoggingMiddleware
from newsroom.ratelimit import limiter
from newsroom.routers import articles, auth, categories, comments, media, metrics, tags, users

VERSION = "1.0.0"

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    configure_logging()
    if settings.rate_limit_active:
        await limiter.connect()
    logger.info("Newsroom API started (env=%s)", settings.APP_ENV)
    yield
    # Shutdown
    await limiter.disconnect()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Newsroom API",
        description="REST backend for a multi-role news site",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.metrics = MetricsCollector()

    # Middleware
    app.add_middleware(RequestLoggingMiddleware, metrics=app.state.metrics)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if settings.trusted_proxies:
        app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=settings.trusted_proxies)

    register_exception_handlers(app)

    # Routers
    for module in (auth, users, articles, categories, tags, comments, media, metrics):
        app.include_router(module.router)

    @app.get("/")
    async def root():
        return {
            "success": True,
            "message": "Newsroom API",
            "version": VERSION,
            "docs": "/docs",
        }

    @app.get("/api/health")
    async def health():
        return {"success": True, "status": "healthy", "version": VERSION, "environment": settings.APP_ENV}

    return app


app = create_app()
