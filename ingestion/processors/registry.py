"""
Composition of processors from application settings.

The CLI, the scheduler and tests build runs through run_pipeline so that
settings are read in one place and handed to the core explicitly.
"""

from typing import Callable, Dict, Optional, Type
from core.config import Settings, settings as default_settings
from ingestion.extractors.camara_client import CamaraAPIClient
from ingestion.loaders.batch_writer import BoundedBatchWriter
from ingestion.loaders.document_store import DocumentStore, create_document_store
from ingestion.processors.base import DeputyRecordProcessor
from ingestion.processors.expenses import DeputyExpensesProcessor
from ingestion.processors.speeches import DeputySpeechesProcessor
from ingestion.runner import PipelineOrchestrator
from models.base import StorageBackend
from schemas.pipeline import FreshnessPolicy, ProgressEvent, RunOptions, RunResult
import logging

logger = logging.getLogger(__name__)

PROCESSORS: Dict[str, Type[DeputyRecordProcessor]] = {
    "expenses": DeputyExpensesProcessor,
    "speeches": DeputySpeechesProcessor,
}


def build_client(config: Settings = default_settings, **kwargs) -> CamaraAPIClient:
    return CamaraAPIClient(
        base_url=config.CAMARA_API_BASE_URL,
        timeout=config.CAMARA_API_TIMEOUT,
        requests_per_second=config.REQUESTS_PER_SECOND,
        max_retries=config.MAX_RETRIES,
        retry_delay=config.RETRY_DELAY,
        items_per_page=config.ITEMS_PER_PAGE,
        max_pages=config.MAX_PAGES,
        **kwargs
    )


def build_store(backend: StorageBackend, config: Settings = default_settings) -> DocumentStore:
    return create_document_store(
        backend,
        database_url=config.DATABASE_URL,
        base_dir=config.LOCAL_EXPORT_DIR
    )


def build_processor(
    kind: str,
    client: CamaraAPIClient,
    store: DocumentStore,
    config: Settings = default_settings,
    **kwargs
) -> DeputyRecordProcessor:
    """Instantiate a processor with policy and writer limits from settings"""
    if kind not in PROCESSORS:
        raise ValueError(f"Unknown processor '{kind}'. Choose from: {', '.join(PROCESSORS)}")

    window_count = config.EXPENSES_WINDOW_COUNT if kind == "expenses" else config.SPEECHES_WINDOW_COUNT
    policy = FreshnessPolicy(
        window_count=window_count,
        staleness_threshold_days=config.STALENESS_THRESHOLD_DAYS,
        publication_lag_days=config.PUBLICATION_LAG_DAYS
    )
    writer = BoundedBatchWriter(
        store,
        max_operations=config.BATCH_MAX_OPERATIONS,
        max_bytes=config.BATCH_MAX_BYTES,
        safety_margin=config.BATCH_SAFETY_MARGIN,
        commit_timeout=config.COMMIT_TIMEOUT_SECONDS
    )
    return PROCESSORS[kind](
        client,
        store,
        policy=policy,
        writer=writer,
        inter_batch_pause_ms=config.INTER_BATCH_PAUSE_MS,
        max_concurrency=config.MAX_CONCURRENCY,
        **kwargs
    )


async def run_pipeline(
    kind: str,
    options: RunOptions,
    store: DocumentStore,
    client: Optional[CamaraAPIClient] = None,
    config: Settings = default_settings,
    on_progress: Optional[Callable[[ProgressEvent], None]] = None,
    **processor_kwargs
) -> RunResult:
    """
    Run one processor end to end.

    The client is closed afterwards only when it was created here.
    """
    owns_client = client is None
    client = client or build_client(config)

    try:
        processor = build_processor(kind, client, store, config, **processor_kwargs)
        orchestrator = PipelineOrchestrator(processor.name, processor.phases(), options)
        if on_progress:
            orchestrator.on_progress(on_progress)
        return await orchestrator.run()
    finally:
        if owns_client:
            await client.aclose()
