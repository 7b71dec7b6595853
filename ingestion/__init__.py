"""
Pipeline components for legislative data ingestion.

Modules:
    retry: RetryExecutor with linear backoff
    fanout: ConcurrentFanoutExtractor for bounded per-deputy concurrency
    reconciliation: Stale window detection and record merging
    runner: PipelineOrchestrator driving validate, extract, transform, load
    scheduler: APScheduler integration for periodic incremental runs

Subpackages:
    extractors: Câmara API client and deputy directory
    transformers: Expense and speech normalization
    loaders: Document stores and the bounded batch writer
    processors: Concrete expenses and speeches pipelines

Architecture:
    A processor hands its four phase functions to the orchestrator:

    1. Validate - Check run options before any I/O
    2. Extract - Fetch per-deputy data concurrently, with retries
    3. Transform - Normalize records, counting failures
    4. Load - Merge with stored records and write in bounded batches

    Partial failures are counted, never fatal; run() always returns a
    RunResult.

Usage:
    from ingestion.processors.registry import run_pipeline
    from schemas.pipeline import RunOptions

    result = await run_pipeline("expenses", RunOptions(legislature=57), store)
"""
