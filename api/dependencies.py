"""
FastAPI dependencies: the document store and the scheduler of the running app
"""

from fastapi import Request
from ingestion.loaders.document_store import DocumentStore
from ingestion.scheduler import ETLScheduler


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_scheduler(request: Request) -> ETLScheduler:
    return request.app.state.scheduler
