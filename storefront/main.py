"""
FastAPI Application Entrypoint.

Sets up CORS, includes all routers, and initializes the database
(optionally with demo data) on startup.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront.core.config import get_settings
from storefront.core.database import init_db, SessionLocal
from storefront.api import (
    health_router,
    products_router,
    payments_router,
    promotions_router,
    loyalty_router,
    users_router,
    assistant_router,
    audit_router,
)
from storefront.services.seed_data import seed_database

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if get_settings().DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: init DB and optionally seed on startup."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    # Initialize database tables
    init_db()
    logger.info("Database tables initialized")

    if settings.SEED_DEMO_DATA:
        db = SessionLocal()
        try:
            seed_database(db)
        finally:
            db.close()

    yield

    logger.info("Shutting down...")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Storefront for digital game accounts: PIX payments with manual approval, "
        "promotions, loyalty points, recommendations and an audit log."
    ),
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include all routers under /api/v1
app.include_router(health_router, prefix=settings.API_PREFIX)
app.include_router(products_router, prefix=settings.API_PREFIX)
app.include_router(payments_router, prefix=settings.API_PREFIX)
app.include_router(promotions_router, prefix=settings.API_PREFIX)
app.include_router(loyalty_router, prefix=settings.API_PREFIX)
app.include_router(users_router, prefix=settings.API_PREFIX)
app.include_router(assistant_router, prefix=settings.API_PREFIX)
app.include_router(audit_router, prefix=settings.API_PREFIX)


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "health": f"{settings.API_PREFIX}/health",
    }
