"""
Hierarchical document stores behind one async interface.

Paths alternate collection and document segments
(collection/doc/collection/doc/...), so a document path always has an even
number of segments. Merges are shallow: top-level payload keys of the
incoming document replace those of the stored one.

Backends:
- PostgresDocumentStore: JSONB table through async SQLAlchemy
- LocalFileDocumentStore: one JSON file per document on local disk
- InMemoryDocumentStore: dict-backed recorder for tests and mock runs
"""

import asyncio
import copy
import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from sqlalchemy import select, delete, text
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from models.base import StorageBackend, WriteKind
from models.document import Document
from schemas.pipeline import WriteOperation
from core.exceptions import InvalidDocumentPathError, DocumentNotFoundError, StoreCommitError
from core.database import create_engine, create_session_maker
import logging

logger = logging.getLogger(__name__)


def build_document_path(collection_path: str, doc_id: str) -> str:
    """
    Join a collection path and a document id, validating the result.

    Raises:
        InvalidDocumentPathError: Empty segments or an odd segment count
    """
    path = f"{collection_path.strip('/')}/{str(doc_id).strip('/')}"
    validate_document_path(path)
    return path


def validate_document_path(path: str) -> List[str]:
    segments = path.strip("/").split("/")
    if any(not s for s in segments) or len(segments) % 2 != 0:
        raise InvalidDocumentPathError(
            f"Invalid document path '{path}': expected collection/doc pairs",
            context={"path": path, "segments": len(segments)}
        )
    return segments


class DocumentStore(ABC):
    """
    Abstract document store.

    Responsibilities:
    - Apply a batch of write operations, raising on failure
    - Read one document or the direct children of a collection
    - Report connectivity for health checks
    """

    backend: StorageBackend

    @abstractmethod
    async def commit_batch(self, operations: List[WriteOperation]) -> None:
        """Apply operations in order; raise if the batch cannot be applied"""
        pass

    @abstractmethod
    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        """Return the payload at path, or None when absent"""
        pass

    @abstractmethod
    async def list_documents(self, collection_path: str) -> Dict[str, Dict[str, Any]]:
        """Return doc id -> payload for direct children of a collection"""
        pass

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass


def _apply_operation(documents: Dict[str, Dict[str, Any]], op: WriteOperation) -> None:
    """Apply one operation to a path -> payload mapping"""
    if op.kind == WriteKind.DELETE:
        documents.pop(op.path, None)
    elif op.kind == WriteKind.PATCH:
        if op.path not in documents:
            raise DocumentNotFoundError(
                f"Cannot patch missing document '{op.path}'",
                context={"path": op.path}
            )
        documents[op.path] = {**documents[op.path], **copy.deepcopy(op.payload or {})}
    elif op.merge and op.path in documents:
        documents[op.path] = {**documents[op.path], **copy.deepcopy(op.payload or {})}
    else:
        documents[op.path] = copy.deepcopy(op.payload or {})


class InMemoryDocumentStore(DocumentStore):
    """
    Dict-backed store that records every committed batch.

    fail_next_commits / stall_next_commit let tests exercise the writer's
    error and timeout handling.
    """

    backend = StorageBackend.MEMORY

    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.committed_batches: List[List[WriteOperation]] = []
        self.fail_next_commits = 0
        self.stall_next_commit: Optional[float] = None

    async def commit_batch(self, operations: List[WriteOperation]) -> None:
        if self.stall_next_commit is not None:
            delay, self.stall_next_commit = self.stall_next_commit, None
            await asyncio.sleep(delay)

        if self.fail_next_commits > 0:
            self.fail_next_commits -= 1
            raise StoreCommitError(
                "Simulated commit failure",
                operation_count=len(operations)
            )

        # Stage against a copy so a failing op leaves the store untouched
        staged = dict(self.documents)
        for op in operations:
            _apply_operation(staged, op)
        self.documents = staged
        self.committed_batches.append(list(operations))

    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        doc = self.documents.get(path.strip("/"))
        return copy.deepcopy(doc) if doc is not None else None

    async def list_documents(self, collection_path: str) -> Dict[str, Dict[str, Any]]:
        prefix = collection_path.strip("/") + "/"
        return {
            path[len(prefix):]: copy.deepcopy(doc)
            for path, doc in self.documents.items()
            if path.startswith(prefix) and "/" not in path[len(prefix):]
        }


class LocalFileDocumentStore(DocumentStore):
    """
    Store each document as <base_dir>/<path>.json.

    File I/O runs in a worker thread so the event loop is never blocked.
    """

    backend = StorageBackend.LOCAL_FILE

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir)

    def _file_for(self, path: str) -> Path:
        return self.base_dir / f"{path.strip('/')}.json"

    def _read(self, path: str) -> Optional[Dict[str, Any]]:
        file_path = self._file_for(path)
        if not file_path.exists():
            return None
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, path: str, payload: Dict[str, Any]) -> None:
        file_path = self._file_for(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2, default=str)

    def _commit_sync(self, operations: List[WriteOperation]) -> None:
        for op in operations:
            if op.kind == WriteKind.DELETE:
                self._file_for(op.path).unlink(missing_ok=True)
                continue

            current = self._read(op.path)
            if op.kind == WriteKind.PATCH and current is None:
                raise DocumentNotFoundError(
                    f"Cannot patch missing document '{op.path}'",
                    context={"path": op.path}
                )
            if current is not None and (op.merge or op.kind == WriteKind.PATCH):
                payload = {**current, **(op.payload or {})}
            else:
                payload = op.payload or {}
            self._write(op.path, payload)

    def _list_sync(self, collection_path: str) -> Dict[str, Dict[str, Any]]:
        directory = self.base_dir / collection_path.strip("/")
        if not directory.is_dir():
            return {}
        result = {}
        for file_path in sorted(directory.glob("*.json")):
            with open(file_path, "r", encoding="utf-8") as f:
                result[file_path.stem] = json.load(f)
        return result

    async def commit_batch(self, operations: List[WriteOperation]) -> None:
        await asyncio.to_thread(self._commit_sync, operations)

    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._read, path)

    async def list_documents(self, collection_path: str) -> Dict[str, Dict[str, Any]]:
        return await asyncio.to_thread(self._list_sync, collection_path)

    async def ping(self) -> bool:
        return True


class PostgresDocumentStore(DocumentStore):
    """
    Document store on a single JSONB table.

    Ensures:
    - One transaction per batch, rolled back on any failure
    - Upsert via INSERT ... ON CONFLICT (idempotent on re-delivery)
    - Shallow merge via JSONB concatenation
    """

    backend = StorageBackend.POSTGRES

    def __init__(self, engine: AsyncEngine, session_maker: async_sessionmaker):
        self.engine = engine
        self.session_maker = session_maker

    async def commit_batch(self, operations: List[WriteOperation]) -> None:
        async with self.session_maker() as session:
            try:
                for op in operations:
                    await self._apply(session, op)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def _apply(self, session, op: WriteOperation) -> None:
        now = datetime.now(timezone.utc)

        if op.kind == WriteKind.DELETE:
            await session.execute(delete(Document).where(Document.path == op.path))
            return

        if op.kind == WriteKind.PATCH:
            result = await session.execute(
                select(Document).where(Document.path == op.path).with_for_update()
            )
            doc = result.scalar_one_or_none()
            if doc is None:
                raise DocumentNotFoundError(
                    f"Cannot patch missing document '{op.path}'",
                    context={"path": op.path}
                )
            doc.payload = {**(doc.payload or {}), **(op.payload or {})}
            doc.updated_at = now
            return

        stmt = insert(Document).values(
            path=op.path,
            collection=op.collection,
            payload=op.payload or {},
            created_at=now,
            updated_at=now
        )
        if op.merge:
            new_payload = Document.payload.op("||")(stmt.excluded.payload)
        else:
            new_payload = stmt.excluded.payload
        stmt = stmt.on_conflict_do_update(
            index_elements=["path"],
            set_={"payload": new_payload, "updated_at": stmt.excluded.updated_at}
        )
        await session.execute(stmt)

    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(Document.payload).where(Document.path == path.strip("/"))
            )
            return result.scalar_one_or_none()

    async def list_documents(self, collection_path: str) -> Dict[str, Dict[str, Any]]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(Document.path, Document.payload)
                .where(Document.collection == collection_path.strip("/"))
                .order_by(Document.path)
            )
            return {path.rsplit("/", 1)[1]: payload for path, payload in result.all()}

    async def ping(self) -> bool:
        try:
            async with self.session_maker() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Document store ping failed: {e}")
            return False

    async def close(self) -> None:
        await self.engine.dispose()


def create_document_store(
    backend: StorageBackend,
    database_url: Optional[str] = None,
    base_dir: Optional[str] = None
) -> DocumentStore:
    """
    Build the store for a storage backend chosen by a composition root.

    Args:
        backend: Destination selected once by the CLI, scheduler or API
        database_url: Postgres URL (POSTGRES only)
        base_dir: Export directory (LOCAL_FILE only)
    """
    backend = StorageBackend(backend)

    if backend == StorageBackend.POSTGRES:
        engine = create_engine(database_url)
        return PostgresDocumentStore(engine, create_session_maker(engine))

    if backend == StorageBackend.LOCAL_FILE:
        if not base_dir:
            raise ValueError("base_dir is required for the local file store")
        return LocalFileDocumentStore(base_dir)

    return InMemoryDocumentStore()
