"""
Chunked concurrent fan-out over a list of identifiers.

Ids are processed in consecutive chunks of `concurrency` items. Items within
a chunk run concurrently; chunks run sequentially with a pause between them
to stay polite to the upstream API. One failing id never cancels its
siblings.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence
import logging

logger = logging.getLogger(__name__)


@dataclass
class FetchOutcome:
    """Settled result of one id: exactly one of value/error is meaningful"""
    id: Any
    value: Any = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ConcurrentFanoutExtractor:
    """
    Run an async fetch for many ids with bounded concurrency.

    Features:
    - Results returned in input order, one outcome per id
    - Per-id failures captured as outcomes, never raised
    - Pause between chunks, none after the last chunk
    - Optional per-chunk progress callback
    """

    def __init__(
        self,
        concurrency: int = 3,
        inter_batch_pause_ms: int = 2000,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self.concurrency = concurrency
        self.inter_batch_pause_ms = inter_batch_pause_ms
        self._sleep = sleep

    async def _settle(self, item_id: Any, fetch: Callable[[Any], Awaitable[Any]]) -> FetchOutcome:
        try:
            value = await fetch(item_id)
            return FetchOutcome(id=item_id, value=value)
        except Exception as e:
            logger.warning(f"Fetch failed for {item_id}: {e}")
            return FetchOutcome(id=item_id, error=e)

    async def extract_all(
        self,
        ids: Sequence[Any],
        fetch: Callable[[Any], Awaitable[Any]],
        on_chunk_complete: Optional[Callable[[int, int], None]] = None
    ) -> List[FetchOutcome]:
        """
        Fetch every id and return settled outcomes in input order.

        Args:
            ids: Identifiers to fetch
            fetch: Async function called once per id
            on_chunk_complete: Called with (completed, total) after each chunk

        Returns:
            One FetchOutcome per id, same order as ids
        """
        ids = list(ids)
        total = len(ids)
        outcomes: List[FetchOutcome] = []

        if total == 0:
            return outcomes

        chunk_count = (total + self.concurrency - 1) // self.concurrency

        for index, start in enumerate(range(0, total, self.concurrency)):
            chunk = ids[start:start + self.concurrency]
            logger.debug(f"Fan-out chunk {index + 1}/{chunk_count} ({len(chunk)} ids)")

            results = await asyncio.gather(*(self._settle(i, fetch) for i in chunk))
            outcomes.extend(results)

            if on_chunk_complete:
                try:
                    on_chunk_complete(len(outcomes), total)
                except Exception as e:
                    logger.warning(f"Chunk progress callback failed: {e}")

            if index < chunk_count - 1 and self.inter_batch_pause_ms > 0:
                await self._sleep(self.inter_batch_pause_ms / 1000)

        failed = sum(1 for o in outcomes if not o.ok)
        if failed:
            logger.info(f"Fan-out finished: {total - failed}/{total} succeeded, {failed} failed")

        return outcomes
