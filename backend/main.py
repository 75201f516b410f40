"""InstaGrowth Analytics - FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from config import get_settings
from database import engine
from models import Base
from routers import analytics_router, instagram_router, sync_router
from services.errors import StoreError
from services.scheduler import start_scheduler, stop_scheduler
from middleware.rate_limit import limiter, rate_limit_exceeded_handler

logger = logging.getLogger(__name__)
settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - create tables on startup, stop scheduler on shutdown."""
    # Startup: create database tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Security check: Warn if using default secrets in production
    if not settings.debug and settings.jwt_secret == "dev-secret-change-in-production":
        print("⚠ SECURITY WARNING: Using default JWT secret in production!")
        print("  Set JWT_SECRET environment variable to a secure random value.")
    if not settings.debug and settings.cron_secret_key == "change-this-in-production":
        print("⚠ SECURITY WARNING: Using default cron secret in production!")
        print("  Set CRON_SECRET_KEY environment variable to a secure random value.")

    # Start background scheduler unless an external cron drives /sync
    if settings.scheduler_enabled:
        start_scheduler()
    else:
        print("⚠ Background scheduler disabled - expecting external cron on /sync endpoints")

    yield

    stop_scheduler()
    await engine.dispose()


app = FastAPI(
    title="InstaGrowth Analytics API",
    description="Daily Instagram snapshots and growth analytics",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error(f"Store error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Database error", "message": str(exc)},
    )


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(analytics_router)
app.include_router(instagram_router)
app.include_router(sync_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "instagrowth-analytics"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "InstaGrowth Analytics API",
        "version": "0.1.0",
        "docs": "/docs",
    }
