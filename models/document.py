from sqlalchemy import Column, String, DateTime, Index
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime, timezone
from models.base import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Document(Base):
    """
    One document of the hierarchical document store.
    
    Design:
    - path is the full slash-separated document path
      (collection/doc/collection/doc/...), always an even number of segments
    - collection is the path minus its last segment, indexed so the
      children of a collection can be listed
    - payload holds the document body; merges are shallow (JSONB ||)
    """
    __tablename__ = "documents"
    
    path = Column(String(1024), primary_key=True)
    collection = Column(String(1024), nullable=False)
    payload = Column(JSONB, nullable=False, default=dict)
    
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
    
    __table_args__ = (
        Index("idx_documents_collection", "collection"),
    )
