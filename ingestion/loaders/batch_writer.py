"""
Size- and count-bounded batch writer for the document store.

Every store request is limited to MAX_OPS operations and MAX_BYTES of
payload. The writer accumulates operations, estimates their serialized
size, and flushes automatically so that no committed batch ever breaks
either limit.
"""

import asyncio
import json
import time
from typing import Any, Dict, List, Optional
from models.base import WriteKind
from schemas.pipeline import BatchResult, WriteOperation, WriterStats
from ingestion.loaders.document_store import DocumentStore, build_document_path
from core.exceptions import OversizedPayloadError, StoreCommitError
import logging

logger = logging.getLogger(__name__)


def estimate_bytes(payload: Optional[Dict[str, Any]]) -> int:
    """UTF-8 length of the JSON serialization of a payload"""
    if payload is None:
        return 0
    return len(json.dumps(payload, default=str, ensure_ascii=False).encode("utf-8"))


class BoundedBatchWriter:
    """
    Accumulate write operations and commit them in bounded batches.

    Guarantees:
    - A batch never holds more than max_operations operations
    - A batch never holds more than max_bytes * safety_margin estimated bytes
    - A single payload larger than the byte budget is skipped, never truncated
    - After every flush the pending batch is empty, whatever the outcome

    The writer is owned by one pipeline run and must not be shared between
    concurrent runs.
    """

    def __init__(
        self,
        store: DocumentStore,
        max_operations: int = 250,
        max_bytes: int = 1048576,
        safety_margin: float = 0.95,
        commit_timeout: float = 30.0
    ):
        if max_operations < 1:
            raise ValueError(f"max_operations must be >= 1, got {max_operations}")
        if not 0 < safety_margin <= 1:
            raise ValueError(f"safety_margin must be in (0, 1], got {safety_margin}")

        self.store = store
        self.max_operations = max_operations
        self.byte_budget = int(max_bytes * safety_margin)
        self.commit_timeout = commit_timeout

        self._operations: List[WriteOperation] = []
        self._pending_bytes = 0
        self.stats = WriterStats()
        self.results: List[BatchResult] = []
        self.oversized: List[OversizedPayloadError] = []

    @property
    def pending_operations(self) -> int:
        return len(self._operations)

    @property
    def pending_bytes(self) -> int:
        return self._pending_bytes

    async def enqueue_upsert(
        self,
        collection_path: str,
        doc_id: str,
        payload: Dict[str, Any],
        merge: bool = True
    ) -> bool:
        """Queue a set-document operation (shallow merge by default)"""
        return await self._enqueue(WriteKind.UPSERT, collection_path, doc_id, payload, merge)

    async def enqueue_patch(
        self,
        collection_path: str,
        doc_id: str,
        payload: Dict[str, Any]
    ) -> bool:
        """Queue an update of an existing document"""
        return await self._enqueue(WriteKind.PATCH, collection_path, doc_id, payload, True)

    async def enqueue_delete(self, collection_path: str, doc_id: str) -> bool:
        """Queue a document deletion"""
        return await self._enqueue(WriteKind.DELETE, collection_path, doc_id, None, False)

    async def _enqueue(
        self,
        kind: WriteKind,
        collection_path: str,
        doc_id: str,
        payload: Optional[Dict[str, Any]],
        merge: bool
    ) -> bool:
        """
        Validate, size and queue one operation.

        Returns:
            True if queued, False if skipped as oversized

        Raises:
            InvalidDocumentPathError: Path does not resolve to a document
        """
        path = build_document_path(collection_path, doc_id)
        size = estimate_bytes(payload)

        if size > self.byte_budget:
            error = OversizedPayloadError(
                f"Skipping {kind.value} of '{path}': payload exceeds batch byte budget",
                estimated_bytes=size,
                limit_bytes=self.byte_budget,
                context={"path": path}
            )
            self.oversized.append(error)
            self.stats.skipped_oversized += 1
            logger.error(str(error), extra={"error_context": error.to_dict()})
            return False

        # Seal the current batch before this operation would breach a bound
        if self._operations and (
            len(self._operations) + 1 > self.max_operations
            or self._pending_bytes + size > self.byte_budget
        ):
            await self.flush()

        self._operations.append(
            WriteOperation(kind=kind, path=path, payload=payload, merge=merge, estimated_bytes=size)
        )
        self._pending_bytes += size
        self.stats.enqueued += 1

        if len(self._operations) >= self.max_operations:
            await self.flush()

        return True

    async def flush(self) -> BatchResult:
        """
        Commit the pending batch with a hard timeout.

        Store errors and timeouts are logged and reported in the result,
        never raised. Pending state is reset in every case.
        """
        operations = self._operations
        self._operations = []
        self._pending_bytes = 0

        if not operations:
            return BatchResult()

        total = len(operations)
        paths = [op.path for op in operations]
        start = time.monotonic()

        try:
            await asyncio.wait_for(self.store.commit_batch(operations), timeout=self.commit_timeout)

            result = BatchResult(
                total=total,
                succeeded=total,
                duration_ms=(time.monotonic() - start) * 1000,
                paths=paths
            )
            self.stats.committed += total
            self.stats.batches_committed += 1
            logger.debug(f"Committed batch of {total} operations in {result.duration_ms:.0f}ms")

        except asyncio.TimeoutError as e:
            error = StoreCommitError(
                f"Batch commit timed out after {self.commit_timeout}s",
                operation_count=total,
                original_exception=e
            )
            result = self._record_failure(error, total, paths, start)

        except Exception as e:
            error = StoreCommitError(
                f"Batch commit failed: {e}",
                operation_count=total,
                original_exception=e
            )
            result = self._record_failure(error, total, paths, start)

        self.results.append(result)
        return result

    def _record_failure(self, error: StoreCommitError, total: int, paths: List[str], start: float) -> BatchResult:
        self.stats.failed += total
        self.stats.batches_failed += 1
        logger.error(
            f"Batch commit failed, {total} operations lost: {error.message}",
            extra={"error_context": error.to_dict()}
        )
        return BatchResult(
            total=total,
            failed=total,
            duration_ms=(time.monotonic() - start) * 1000,
            error=error.message,
            paths=paths
        )

    async def commit(self) -> BatchResult:
        """Final flush at the end of a load phase"""
        return await self.flush()
