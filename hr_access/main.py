"""
HR Access Backend - Main Application Entry Point
"""
import logging
from urllib.parse import urlparse, urlunparse

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi import HTTPException

from hr_access.api.router import api_router
from hr_access.core.config import settings
from hr_access.core.deps import get_store, shutdown_store
from hr_access.core.errors import (
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from hr_access.core.logging import setup_logging
from hr_access.db.init_db import seed_rbac

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)


def _mask_database_url(url: str) -> str:
    """Mask password in DATABASE_URL for safe logging; show full path for sqlite."""
    try:
        parsed = urlparse(url)
        if parsed.scheme.startswith("sqlite"):
            return url
        if parsed.password:
            netloc = f"{parsed.username}:****@{parsed.hostname or ''}"
            if parsed.port:
                netloc += f":{parsed.port}"
            return urlunparse(parsed._replace(netloc=netloc))
    except ValueError:
        return "***"
    return url


# Create FastAPI app
app = FastAPI(
    title="HR Access Backend",
    description="Role-based access control and denormalized data maintenance for HR records",
    version=settings.VERSION or "1.0.0"
)

# Configure CORS - must be before other middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register exception handlers
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Include all API routes under /api/v1
app.include_router(api_router, prefix="/api/v1")


@app.on_event("startup")
def startup_log_config() -> None:
    """Log DATABASE_URL at startup so it can be verified against Alembic."""
    masked = _mask_database_url(settings.DATABASE_URL)
    logger.info("DATABASE_URL (app): %s", masked)


@app.on_event("startup")
def bootstrap_rbac() -> None:
    """
    Create the system roles and their grants if they don't exist.
    """
    if not settings.SEED_RBAC_ON_STARTUP:
        logger.info("RBAC seed disabled, skipping")
        return
    try:
        seed_rbac(get_store())
    except Exception as e:
        logger.error("Error during RBAC bootstrap: %s", e)


@app.on_event("shutdown")
def stop_triggers() -> None:
    """Let in-flight trigger handlers finish before the process exits."""
    shutdown_store()
