"""ListingWatch Backend -- FastAPI Application Entry Point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select

from listingwatch.api.v1.router import api_v1_router
from listingwatch.config import settings
from listingwatch.db.seed import seed_sites
from listingwatch.db.session import async_session_factory, engine
from listingwatch.models import Base, MonitoredSite
from listingwatch.scrapers.register_adapters import register_all_adapters
from listingwatch.scrapers.scheduler import init_target_scheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.DEBUG else logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    scheduler = None

    # Startup
    logger.info("Starting ListingWatch API server...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables verified/created")

        # Seed monitored sites if empty
        async with async_session_factory() as session:
            result = await session.execute(select(MonitoredSite.id).limit(1))
            if result.scalar_one_or_none() is None:
                logger.info("Seeding monitored sites...")
                counts = await seed_sites(session)
                logger.info(f"Seed data inserted: {counts['created']} sites")
    except Exception as e:
        logger.error(f"Database init failed: {e}", exc_info=True)

    # Register all site-family adapters
    logger.info("Registering scraper adapters...")
    register_all_adapters()

    # Start target scheduler (only in non-test environments)
    if settings.ENVIRONMENT != "test":
        logger.info("Initializing target scheduler...")
        scheduler = init_target_scheduler(async_session_factory)
        scheduler.start()

        # Schedule a repeating job for every active target
        try:
            jobs_count = await scheduler.load_target_jobs()
            logger.info(f"Scheduler started with {jobs_count} target jobs")
            scheduler.add_health_job()
        except Exception as e:
            logger.error(f"Failed to load target jobs: {e}", exc_info=True)
    else:
        logger.info("Scheduler disabled (test environment)")

    yield

    # Shutdown
    logger.info("Shutting down ListingWatch API server...")

    if scheduler:
        logger.info("Stopping target scheduler...")
        scheduler.stop()

    await engine.dispose()


app = FastAPI(
    title="ListingWatch API",
    description="Keyword monitoring across retailer, forum, classifieds and auction sites",
    version="0.1.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.FRONTEND_URL,
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register API v1 router
app.include_router(api_v1_router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "ListingWatch API",
        "version": "0.1.0",
        "description": "Keyword monitoring for listing sites",
        "docs": "/docs" if settings.DEBUG else None,
        "health": "/api/v1/health",
    }
