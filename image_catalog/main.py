"""Main FastAPI application."""
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from image_catalog import __version__
from image_catalog.api.middleware import RequestTimingMiddleware
from image_catalog.api.routes import api_router
from image_catalog.core.config import settings
from image_catalog.core.database import close_db, init_db
from image_catalog.core.exceptions import CatalogException
from image_catalog.core.redis import redis_client


def configure_logging():
    handlers = [logging.StreamHandler(sys.stdout)]
    if settings.log_file:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(settings.log_file))

    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


configure_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    # Startup
    logger.info(f"Starting Image Catalog {__version__}")
    logger.info(f"Storage root: {settings.storage_root}")
    logger.info(
        f"Database: {settings.database_url.split('@')[1] if '@' in settings.database_url else 'configured'}"
    )

    settings.ensure_directories_exist()

    if settings.create_tables_on_startup:
        await init_db()
        logger.info("Database tables ensured")

    if settings.cache_enabled:
        await redis_client.connect()
        try:
            reachable = await redis_client.ping()
        except (RedisError, OSError) as e:
            logger.warning(f"Redis not reachable at startup, serving from the database: {e}")
        else:
            logger.info(f"Redis reachable: {reachable}")
    else:
        logger.info("Cache disabled")

    yield

    # Shutdown
    logger.info("Shutting down Image Catalog")
    await redis_client.disconnect()
    await close_db()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Image Catalog API",
        description="Image catalog with tag-filtered, cached listings",
        version=__version__,
        lifespan=lifespan,
    )

    @app.exception_handler(CatalogException)
    async def catalog_exception_handler(request: Request, exc: CatalogException):
        """Map domain errors to their HTTP status."""
        if exc.status_code >= 500:
            logger.error(f"{exc.kind.value} error on {request.method} {request.url.path}: {exc.message}")
        else:
            logger.info(f"HTTP {exc.status_code} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "kind": exc.kind.value}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Log unhandled exceptions with their traceback."""
        logger.exception(f"Unhandled exception on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "kind": "internal"}
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        RequestTimingMiddleware,
        slow_threshold=settings.slow_request_threshold_seconds,
    )

    app.include_router(api_router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "Image Catalog API",
            "version": __version__,
            "docs": "/docs",
            "health": f"{settings.api_prefix}/health"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "image_catalog.main:app",
        host=settings.api_host,
        port=settings.api_port,
    )
