# backend/pawsync/main.py
"""
FastAPI application entry point for pawsync.

Serves pet images and the sync admin surface. Sync jobs started through the
API run as tasks in this process; the scheduled sweep lives in the separate
worker process (``pawsync.worker worker``) so API replicas never compete for
the same pets.
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import settings
from .database import async_db
from .database.exceptions import SchemaOperationError
from .database.migrations import initialize_database
from .enums import LogEmoji, LoggerName
from .middleware import ErrorHandlerMiddleware, RequestLoggerMiddleware
from .routers import health_routers as health
from .routers import image_routers as images
from .routers import sync_routers as sync
from .services.logger import configure_logging, get_service_logger
from .services.service_container import build_services

logger = get_service_logger(LoggerName.SYSTEM, LogEmoji.STARTUP)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Handle application startup and shutdown"""
    configure_logging(settings.log_level, settings.log_file)

    logger.info(
        "Starting FastAPI application",
        extra_context={
            "environment": settings.environment,
            "api_host": settings.api_host,
            "api_port": settings.api_port,
        },
    )

    await async_db.initialize()
    try:
        result = await initialize_database(async_db)
    except SchemaOperationError as e:
        logger.error("Database initialization failed", exception=e)
        await async_db.close()
        raise RuntimeError(f"Cannot start application: {e}") from e

    logger.info(
        f"Database initialized: {', '.join(result['tables'])}",
        extra_context={
            "database_url": (
                settings.database_url.split("@")[-1]
                if "@" in settings.database_url
                else "local"
            ),
        },
        emoji=LogEmoji.DATABASE,
    )

    _app.state.services = build_services(settings, async_db)

    yield

    logger.info("Shutting down FastAPI application", emoji=LogEmoji.SHUTDOWN)
    await _app.state.services.close()
    await async_db.close()
    logger.info("Database connections closed", emoji=LogEmoji.SHUTDOWN)


app = FastAPI(
    title="pawsync API",
    description="Pet image acquisition, serving and sync administration",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Middleware stack (last added = first executed)
app.add_middleware(RequestLoggerMiddleware)
app.add_middleware(ErrorHandlerMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(images.router, prefix="/api", tags=["images"])
app.include_router(sync.router, prefix="/api", tags=["sync"])
app.include_router(health.router, prefix="/api", tags=["health"])


@app.get("/")
async def root():
    return {"message": "pawsync API", "version": __version__}


if __name__ == "__main__":
    uvicorn.run(
        "pawsync.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.environment == "development",
    )
