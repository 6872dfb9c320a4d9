"""Storefront catalog API main application module.

This module initializes the FastAPI application and configures
core middleware, routers, and startup/shutdown events.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from storefront.api.health import router as health_router
from storefront.api.media import router as media_router
from storefront.api.middleware import setup_middleware
from storefront.api.products import router as products_router
from storefront.api.variants import router as variants_router
from storefront.domain.exceptions import (
    ConflictingStateError,
    DomainError,
    InsufficientStockError,
    InvalidCombinationError,
    InvalidPayloadError,
    NotFoundError,
    PartialFailureError,
    PricingNotConfiguredError,
)
from storefront.infrastructure.config import settings
from storefront.infrastructure.database import engine
from storefront.infrastructure.logging import configure_logging

logger = structlog.get_logger()

# HTTP status per domain error
ERROR_STATUS: dict[type[DomainError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidCombinationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InvalidPayloadError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    PartialFailureError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ConflictingStateError: status.HTTP_409_CONFLICT,
    InsufficientStockError: status.HTTP_409_CONFLICT,
    PricingNotConfiguredError: status.HTTP_409_CONFLICT,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown events.

    Args:
        app: The FastAPI application instance.

    Yields:
        None after startup, cleanup happens after yield.
    """
    # Startup
    configure_logging()
    logger.info(
        "Starting storefront catalog API",
        version=settings.api_version,
        debug=settings.debug,
    )

    yield

    # Shutdown
    await engine.dispose()
    logger.info("Shutting down storefront catalog API")


app = FastAPI(
    title="Storefront Catalog API",
    description="Attribute-combination grouping engine for a multilingual catalog",
    version=settings.api_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware (must be added before custom middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Setup custom middleware (request ID, error handling)
setup_middleware(app)

# Include routers
app.include_router(health_router, tags=["Health"])
app.include_router(products_router)
app.include_router(variants_router)
app.include_router(media_router)


# ============================================================================
# Custom Exception Handlers
# ============================================================================


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Render domain errors with the standard error body."""
    request_id = getattr(request.state, "request_id", None)
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)

    logger.warning(
        "Domain error",
        path=request.url.path,
        method=request.method,
        error_code=exc.error_code,
        error=exc.message,
    )

    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
            "request_id": request_id,
        },
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Render a store constraint violation as a conflicting state."""
    conflict = ConflictingStateError(
        "The change conflicts with the stored catalog",
        details={"constraint": str(exc.orig)},
    )
    return await domain_error_handler(request, conflict)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions with consistent format."""
    request_id = getattr(request.state, "request_id", None)

    logger.exception(
        "Unhandled exception in handler",
        path=request.url.path,
        method=request.method,
        error=str(exc),
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "INTERNAL_ERROR",
            "message": "An internal error occurred",
            "details": {},
            "request_id": request_id,
        },
    )
