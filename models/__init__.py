"""
SQLAlchemy ORM models for the Postgres document store.

Models:
    base: Base declarative class and shared enums (StorageBackend, RunStatus, WriteKind)
    document: Hierarchical documents addressed by slash-separated path

Usage:
    from models.base import Base, StorageBackend, RunStatus
    from models.document import Document
"""
