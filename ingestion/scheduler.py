import logging
from collections import deque
from datetime import datetime, timezone
from typing import Deque, Dict, List, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from core.config import Settings, settings as default_settings
from ingestion.loaders.document_store import DocumentStore
from ingestion.processors.registry import run_pipeline
from models.base import RunStatus
from schemas.pipeline import ETLErrorDetail, RunOptions, RunResult

logger = logging.getLogger(__name__)


class ETLScheduler:
    """Periodic incremental sync of expenses and speeches"""

    def __init__(
        self,
        store: DocumentStore,
        config: Settings = default_settings,
        processors: tuple = ("expenses", "speeches"),
        history_size: int = 20
    ):
        self.store = store
        self.config = config
        self.processors = processors
        self.scheduler = AsyncIOScheduler()
        self.history: Deque[Dict] = deque(maxlen=history_size)

    def _options(self) -> RunOptions:
        return RunOptions(
            destination=self.store.backend,
            incremental=True,
            legislature=self.config.SCHEDULED_LEGISLATURE,
            concurrency=self.config.DEFAULT_CONCURRENCY
        )

    async def run_etl_job(self) -> List[RunResult]:
        """Job to run every processor once; one failure never stops the next"""
        logger.info("Scheduler: Starting ETL job")
        results = []

        for kind in self.processors:
            started_at = datetime.now(timezone.utc)
            try:
                result = await run_pipeline(kind, self._options(), self.store, config=self.config)
            except Exception as e:
                logger.error(f"Scheduler: {kind} run failed - {e}")
                result = RunResult(
                    status=RunStatus.ERROR,
                    failures=1,
                    destination=self.store.backend.value,
                    legislature=self.config.SCHEDULED_LEGISLATURE,
                    errors=[ETLErrorDetail(code=type(e).__name__, message=str(e))]
                )

            logger.info(
                f"Scheduler: {kind} finished with {result.status.value} "
                f"({result.successes} ok, {result.failures} failed)"
            )
            self.history.append({"processor": kind, "started_at": started_at, "result": result})
            results.append(result)

        return results

    def recent_runs(self) -> List[Dict]:
        """Most recent runs first"""
        return list(reversed(self.history))

    def last_run(self) -> Optional[Dict]:
        return self.history[-1] if self.history else None

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_etl_job,
            trigger=IntervalTrigger(minutes=self.config.SCHEDULE_INTERVAL_MINUTES),
            id="etl_job",
            replace_existing=True
        )
        self.scheduler.start()
        logger.info(f"ETL Scheduler started (every {self.config.SCHEDULE_INTERVAL_MINUTES} minutes)")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("ETL Scheduler stopped")
