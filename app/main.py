"""
FastAPI application entry point.

This module initializes the FastAPI application, configures middleware,
and registers all API routers.
"""
import os
from datetime import datetime
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from .core.config import settings
from .core.logging_config import configure_logging

# Import routers
from .api.routers import facility_imports

# Ensure logging is configured before the application starts serving requests.
configure_logging(settings.log_level, settings.sql_log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown events."""
    if os.getenv("SKIP_DB_INIT") == "1":
        print("SKIP_DB_INIT=1 detected; skipping database bootstrap during startup")
        yield
        return

    # Startup: Initialize database tables
    try:
        from .db.models import create_facilities_table_if_not_exists
        from .db.session import get_engine

        print("Initializing database tables...")
        create_facilities_table_if_not_exists(get_engine())
        print("✓ facilities table ready")
    except Exception as e:
        print(f"ERROR: Failed to initialize database tables: {e}")
        print("The application cannot start without proper database setup.")
        import traceback
        traceback.print_exc()
        raise  # Re-raise to prevent app from starting with broken database

    yield  # Application runs here


# Initialize FastAPI application
app = FastAPI(
    title="Facility Import API",
    version="1.0.0",
    description="Bulk CSV import of disposal facility locations with validation and duplicate detection",
    lifespan=lifespan
)

# Allow origins from environment variable or defaults for development
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
allowed_origins = [origin.strip() for origin in allowed_origins]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(facility_imports.router)


@app.get("/")
async def root():
    """Root endpoint returning API information."""
    return {
        "message": "Facility Import API",
        "version": app.version,
        "schema_version": settings.default_schema_version,
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for deployment monitoring."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "service": "facility-import-api"
    }
