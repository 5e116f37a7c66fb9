"""
FastAPI application initialization
"""

from fastapi import FastAPI
from api.routes import cron, health, ingest
from core.config import settings
from core.database import dispose_engine
from core.logging import setup_logging
import logging
from api.middleware import RequestContextMiddleware
from ingestion.scheduler import SyncScheduler

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Catalog Feed Ingestion API",
    description="Affiliate feed ingestion, trust scoring and batch product submission",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Initialize Scheduler
scheduler = SyncScheduler()


# Include routers
app.include_router(health.router)
app.include_router(ingest.router)
app.include_router(cron.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Catalog Feed Ingestion API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    if settings.SCHEDULER_ENABLED:
        scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Catalog Feed Ingestion API")
    if scheduler.scheduler.running:
        scheduler.stop()
    await dispose_engine()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Catalog Feed Ingestion API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "ingest": "/ingest",
            "sync": "/cron/sync"
        }
    }
