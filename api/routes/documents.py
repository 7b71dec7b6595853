"""
Read access to stored documents by path
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from api.dependencies import get_store
from ingestion.loaders.document_store import DocumentStore, validate_document_path
from core.exceptions import InvalidDocumentPathError
from schemas.api import DocumentResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Documents"])


@router.get("/documents/{path:path}", response_model=DocumentResponse)
async def get_document(
    path: str,
    request: Request,
    store: DocumentStore = Depends(get_store)
):
    """
    Fetch one document, e.g. chamber/deputies/expenses/204554/years/2024.

    - 400 when the path does not name a document (odd segment count)
    - 404 when no document is stored at the path
    """
    request_id = getattr(request.state, "request_id", "-")

    try:
        segments = validate_document_path(path)
    except InvalidDocumentPathError as e:
        raise HTTPException(status_code=400, detail=e.message)

    normalized = "/".join(segments)
    payload = await store.get(normalized)

    if payload is None:
        logger.info(f"[{request_id}] Document not found: {normalized}")
        raise HTTPException(status_code=404, detail=f"Document not found: {normalized}")

    return DocumentResponse(
        path=normalized,
        collection="/".join(segments[:-1]),
        doc_id=segments[-1],
        payload=payload
    )
