"""
Health check endpoint with document store and scheduler status
"""

from fastapi import APIRouter, Depends
from api.dependencies import get_store, get_scheduler
from ingestion.loaders.document_store import DocumentStore
from ingestion.scheduler import ETLScheduler
from schemas.api import HealthCheckResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    store: DocumentStore = Depends(get_store),
    scheduler: ETLScheduler = Depends(get_scheduler)
):
    """
    Health check endpoint.

    Returns:
    - Document store connectivity
    - Scheduler state and the status of the last scheduled run
    """
    store_connected = False
    try:
        store_connected = await store.ping()
    except Exception as e:
        logger.error(f"Document store ping failed: {str(e)}")

    last = scheduler.last_run()

    return HealthCheckResponse(
        storage_backend=store.backend.value,
        store_connected=store_connected,
        scheduler_running=scheduler.scheduler.running,
        last_run_status=last["result"].status if last else None,
        last_run_at=last["started_at"] if last else None
    )
