"""
FastAPI Application Entry Point.

This is the main application file for the E-Commerce Back Office.
"""

from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from backoffice.app.core.config import settings
from backoffice.app.api.v1.router import router as api_v1_router
from backoffice.app.core.observability import ObservabilityMiddleware, configure_logging
from backoffice.app.core.redis_client import get_redis, ping_redis
from backoffice.app.db.session import engine, Base
from backoffice.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from backoffice.app.models.client import Client
from backoffice.app.models.order import Order
from backoffice.app.models.delivery import Delivery
from backoffice.app.models.delivery_status_entry import DeliveryStatusEntry
from backoffice.app.models.audit_log import AuditLog

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Disposes of the connection pool on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()

# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Back office API for orders, clients and deliveries",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check(redis_conn=Depends(get_redis)):
    """
    Health check endpoint.

    Reports Redis reachability when Redis backs the delivery locks.

    Returns:
        dict: Status and application information
    """
    body = {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "lock_backend": settings.lock_backend,
    }
    if settings.lock_backend == "redis":
        body["redis"] = "ok" if await ping_redis(redis_conn) else "unavailable"
    return body


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to the E-Commerce Back Office API",
        "docs": "/docs",
        "health": "/health",
    }
