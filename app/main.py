"""
Main FastAPI application entry point.
"""
import json
import logging
import os
import uuid
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import text

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.database import engine, Base, SessionLocal
from app.core.exceptions import FleetError
from app.core.logging_config import setup_logging
from app.api.router import api_router
from app.middleware.request_logging import RequestLoggingMiddleware

# Register every model with Base.metadata before create_all()
from app import models  # noqa: F401

setup_logging()
logger = logging.getLogger(__name__)


def run_migrations() -> None:
    """Apply Alembic migrations; only when DATABASE_URL points at a managed database."""
    if not os.getenv("DATABASE_URL"):
        logger.info("[MIGRATION] DATABASE_URL not set, skipping migrations (local dev mode)")
        return
    try:
        from alembic.config import Config
        from alembic import command

        logger.info("[MIGRATION] DATABASE_URL detected, running Alembic migrations (idempotent)...")
        command.upgrade(Config("alembic.ini"), "head")
        logger.info("[MIGRATION] Alembic migrations completed successfully (or already up-to-date)")
    except Exception as e:
        trace_id = str(uuid.uuid4())
        logger.warning(
            f"[MIGRATION] [{trace_id}] Alembic migration check failed: {e}. "
            "This is OK if migrations already ran or database is not ready yet."
        )
        logger.debug(f"[MIGRATION] [{trace_id}] Migration error details:", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    logger.info(f"Starting up {settings.APP_NAME} API...")

    run_migrations()

    # Fallback for local dev without Alembic
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created/verified successfully")
    except Exception as e:
        logger.error(f"Failed to create database tables: {e}", exc_info=True)
        # Don't fail startup - let the health endpoint report the issue

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
            logger.info("Database connectivity verified")
        finally:
            db.close()
    except Exception as e:
        trace_id = str(uuid.uuid4())
        logger.error(f"[{trace_id}] Database connectivity test failed: {e}", exc_info=True)

    yield
    logger.info(f"Shutting down {settings.APP_NAME} API...")


app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="Fleet compliance tracking - ingest machine audit reports, score them and organize the fleet",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    redirect_slashes=False,  # Avoid POST->GET redirects on trailing slash mismatches
)

# ALLOWED_ORIGINS overrides settings.CORS_ORIGINS for cloud deployment
allowed_origins = os.getenv("ALLOWED_ORIGINS")
if allowed_origins:
    if allowed_origins.startswith("["):
        try:
            allowed_origins = json.loads(allowed_origins)
        except json.JSONDecodeError:
            allowed_origins = [origin.strip() for origin in allowed_origins.strip("[]").split(",")]
    else:
        allowed_origins = [origin.strip() for origin in allowed_origins.split(",") if origin.strip()]
else:
    allowed_origins = settings.CORS_ORIGINS

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Trace-ID"],
)

app.include_router(api_router, prefix="/api")


@app.exception_handler(FleetError)
async def fleet_error_handler(request: Request, exc: FleetError):
    """Domain errors: status from the exception class, message and details for the caller."""
    trace_id = getattr(request.state, "trace_id", str(uuid.uuid4()))
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        f"[{trace_id}] {type(exc).__name__} on {request.method} {request.url.path}: {exc.message}",
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.message,
            "error": type(exc).__name__,
            "details": exc.details,
            "trace_id": trace_id,
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors with trace_id."""
    trace_id = getattr(request.state, "trace_id", str(uuid.uuid4()))
    logger.error(
        f"[{trace_id}] Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=True
    )

    if isinstance(exc, SQLAlchemyError):
        # Never leak storage error text
        error_detail = "Database error"
        error_type = "DatabaseError"
    elif isinstance(exc, HTTPException):
        raise exc
    else:
        error_detail = str(exc) if settings.DEBUG else "Internal Server Error"
        error_type = type(exc).__name__

    return JSONResponse(
        status_code=500,
        content={
            "detail": error_detail,
            "trace_id": trace_id,
            "error": error_type,
        },
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": f"{settings.APP_NAME} API",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """
    Liveness check for load balancers.

    Returns 200 without touching the database; use /health/db or /api/health
    for readiness.
    """
    return {"status": "ok"}


@app.get("/health/db")
async def health_check_db():
    """Database readiness: 200 if SELECT 1 succeeds, 503 otherwise."""
    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
            return {"status": "ok", "database": "connected"}
        finally:
            db.close()
    except Exception as e:
        trace_id = str(uuid.uuid4())
        logger.warning(f"[{trace_id}] Database health check failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "trace_id": trace_id,
            }
        )
