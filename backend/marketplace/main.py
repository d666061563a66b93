"""Rental Marketplace - FastAPI Application Entry Point."""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from marketplace.core.config import get_settings
from marketplace.core.env_validation import validate_environment
from marketplace.core.errors import BookingError
from marketplace.routers import (
    auth_router,
    bookings_router,
    listings_router,
    payments_router,
)
from marketplace.services import get_reaper

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup: hard-fail on invalid configuration, then start the reaper
    validate_environment()
    reaper_task = None
    if settings.reaper_enabled:
        reaper = get_reaper()
        reaper_task = asyncio.create_task(reaper.run_forever(settings.reaper_interval_seconds))
    yield
    # Shutdown
    if reaper_task is not None:
        reaper_task.cancel()
        with suppress(asyncio.CancelledError):
            await reaper_task


app = FastAPI(
    title=settings.app_name,
    description="Peer-to-peer rental marketplace: listings, date holds, bookings and payments.",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS - Dynamically configured from ALLOWED_ORIGINS environment variable
# In production, wildcard (*) is blocked by env_validation.py
allowed_origins = [origin.strip() for origin in settings.allowed_origins.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    """Render typed booking failures as JSON with their status code."""
    if exc.status_code >= 500:
        logger.warning(f"[API] {request.method} {request.url.path} failed: {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# API v1 routers
app.include_router(auth_router, prefix=settings.api_v1_prefix)
app.include_router(listings_router, prefix=settings.api_v1_prefix)
app.include_router(bookings_router, prefix=settings.api_v1_prefix)
app.include_router(payments_router, prefix=settings.api_v1_prefix)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": "1.0.0",
        "docs": "/docs" if settings.debug else "Disabled in production",
    }
