"""
FastAPI application initialization
"""

from fastapi import FastAPI
from api.routes import health, runs, documents
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.logging import setup_logging
from ingestion.processors.registry import build_store
from ingestion.scheduler import ETLScheduler
from models.base import StorageBackend
import logging

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Câmara ETL API",
    description="Status and read access for the legislative data pipeline",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Storage and scheduler, selected once from settings
store = build_store(StorageBackend(settings.STORAGE_BACKEND))
scheduler = ETLScheduler(store)
app.state.store = store
app.state.scheduler = scheduler

# Include routers
app.include_router(health.router)
app.include_router(runs.router)
app.include_router(documents.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Câmara ETL API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Storage backend: {store.backend.value}")

    scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Câmara ETL API")
    scheduler.stop()
    await store.close()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Câmara ETL API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "runs": "/runs",
            "documents": "/documents/{path}"
        }
    }
