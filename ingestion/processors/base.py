"""
Abstract base class for per-deputy record processors with incremental sync
"""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional
from pydantic import BaseModel
from ingestion.extractors.camara_client import CamaraAPIClient, replace_path
from ingestion.extractors.deputies import DeputyDirectory
from ingestion.fanout import ConcurrentFanoutExtractor
from ingestion.loaders.batch_writer import BoundedBatchWriter
from ingestion.loaders.document_store import DocumentStore
from ingestion.reconciliation import ReconciliationEngine, parse_window, window_key
from ingestion.runner import PipelineContext, PipelinePhases
from schemas.pipeline import FreshnessPolicy, LoadResult, RunOptions, ValidationResult
from schemas.records import Deputy
from core.exceptions import ETLException
import logging

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeputyRecordProcessor(ABC):
    """
    Base class for processors that fetch one record list per deputy.

    Responsibilities:
    - Pre-flight validation of run options
    - Deputy resolution and concurrent per-deputy extraction
    - Incremental window selection from each deputy's summary document
    - Per-year documents merged with what is already stored
    - Summary and run metadata documents

    Subclasses supply the endpoint, the normalizer and the statistics.
    """

    name: str = "records"
    record_type: str = "record"
    root_collection: str = ""
    endpoint: str = ""
    key_field: str = "id"
    volatile_fields: tuple = ()
    value_field: Optional[str] = None
    group_by: tuple = ("year",)

    def __init__(
        self,
        client: CamaraAPIClient,
        store: DocumentStore,
        policy: Optional[FreshnessPolicy] = None,
        writer: Optional[BoundedBatchWriter] = None,
        inter_batch_pause_ms: int = 2000,
        max_concurrency: int = 10,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.client = client
        self.store = store
        self.policy = policy or FreshnessPolicy()
        self.writer = writer or BoundedBatchWriter(store)
        self.inter_batch_pause_ms = inter_batch_pause_ms
        self.max_concurrency = max_concurrency
        self.clock = clock
        self._sleep = sleep
        self.directory = DeputyDirectory(client)
        self.engine = ReconciliationEngine()
        self.statistics: Dict[str, Any] = {}

    def phases(self) -> PipelinePhases:
        """Bound phase methods for the orchestrator"""
        return PipelinePhases(
            validate=self.validate,
            extract=self.extract,
            transform=self.transform,
            load=self.load
        )

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def normalize(self, deputy_id: str, raw: Dict[str, Any]) -> BaseModel:
        """Normalize one upstream record"""
        pass

    @abstractmethod
    def window_params(self, window: str) -> Dict[str, Any]:
        """Query parameters restricting a fetch to one month window"""
        pass

    @abstractmethod
    def full_params(self, options: RunOptions) -> Dict[str, Any]:
        """Query parameters of a non-incremental fetch"""
        pass

    @abstractmethod
    def run_statistics(self, records: List[BaseModel]) -> Dict[str, Any]:
        """Run-level statistics over all normalized records"""
        pass

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def summary_path(self, deputy_id: str) -> str:
        return f"{self.root_collection}/{deputy_id}"

    def years_collection(self, deputy_id: str) -> str:
        return f"{self.root_collection}/{deputy_id}/years"

    # ------------------------------------------------------------------
    # VALIDATE
    # ------------------------------------------------------------------

    def validate(self, ctx: PipelineContext) -> ValidationResult:
        options = ctx.options
        result = ValidationResult()
        current_year = self.clock().year

        if not options.legislature:
            result.errors.append("Legislature is required")
        elif options.legislature < 1:
            result.errors.append(f"Invalid legislature: {options.legislature}")

        if options.year is not None and not 2000 <= options.year <= current_year:
            result.errors.append(f"Invalid year: {options.year}. Must be between 2000 and {current_year}")

        if options.month is not None:
            if not 1 <= options.month <= 12:
                result.errors.append(f"Invalid month: {options.month}. Must be between 1 and 12")
            elif options.year is None:
                result.errors.append("Month filter requires a year")

        if not 1 <= options.concurrency <= self.max_concurrency:
            result.errors.append(
                f"Invalid concurrency: {options.concurrency}. Must be between 1 and {self.max_concurrency}"
            )

        parsed_dates = {}
        for label, value in (("start_date", options.start_date), ("end_date", options.end_date)):
            if value:
                try:
                    parsed_dates[label] = date.fromisoformat(value)
                except ValueError:
                    result.errors.append(f"Invalid {label}: {value}. Use YYYY-MM-DD")
        if len(parsed_dates) == 2 and parsed_dates["start_date"] > parsed_dates["end_date"]:
            result.errors.append("start_date must not be after end_date")

        if not options.limit and not options.deputy_id:
            result.warnings.append("No limit or deputy given: every deputy of the legislature will be processed")

        if options.incremental:
            result.warnings.append(
                f"Incremental mode: only the last {self.policy.window_count} months not refreshed "
                f"in {self.policy.staleness_threshold_days} days are fetched"
            )

        return result

    # ------------------------------------------------------------------
    # EXTRACT
    # ------------------------------------------------------------------

    async def resolve_deputies(self, options: RunOptions) -> List[Deputy]:
        if options.deputy_id:
            return [await self.directory.get_deputy(options.deputy_id, options.legislature)]
        return await self.directory.list_deputies(
            options.legislature,
            party=options.party,
            state=options.state,
            limit=options.limit
        )

    async def _fetch_deputy(self, deputy: Deputy, options: RunOptions, now: datetime) -> Dict[str, Any]:
        path = replace_path(self.endpoint, {"codigo": deputy.id})
        summary = await self.store.get(self.summary_path(deputy.id)) or {}
        processed_windows = summary.get("processed_windows") or {}

        if options.incremental:
            windows = self.engine.compute_stale_windows(processed_windows, self.policy, now)

            raw: List[Dict[str, Any]] = []
            for window in windows:
                raw.extend(await self.client.get_all_pages(
                    path,
                    self.window_params(window),
                    context=f"{self.record_type}s of deputy {deputy.id} ({window})"
                ))
        else:
            windows = None
            raw = await self.client.get_all_pages(
                path,
                self.full_params(options),
                context=f"{self.record_type}s of deputy {deputy.id}"
            )

        return {
            "deputy": deputy,
            "raw": raw,
            "windows": windows,
            "processed_windows": processed_windows,
        }

    async def extract(self, ctx: PipelineContext) -> List[Dict[str, Any]]:
        options = ctx.options
        deputies = await self.resolve_deputies(options)
        ctx.state.extraction.processed = len(deputies)
        ctx.emit_progress(f"Extracting {self.record_type}s of {len(deputies)} deputies")

        now = self.clock()
        fanout = ConcurrentFanoutExtractor(
            concurrency=options.concurrency,
            inter_batch_pause_ms=self.inter_batch_pause_ms,
            sleep=self._sleep
        )
        outcomes = await fanout.extract_all(
            deputies,
            lambda deputy: self._fetch_deputy(deputy, options, now),
            on_chunk_complete=lambda done, total: ctx.emit_progress(
                f"Extracted {done}/{total} deputies", {"completed": done, "total": total}
            )
        )

        extracted = []
        for outcome in outcomes:
            if outcome.ok:
                ctx.state.extraction.succeeded += 1
                extracted.append(outcome.value)
            else:
                ctx.state.extraction.failed += 1
                error = outcome.error
                logger.error(
                    f"Extraction failed for deputy {outcome.id.id}: {error}",
                    extra={"error_context": error.to_dict() if isinstance(error, ETLException) else {}}
                )

        total_raw = sum(len(item["raw"]) for item in extracted)
        logger.info(f"Extracted {total_raw} {self.record_type}s from {len(extracted)} deputies")
        return extracted

    # ------------------------------------------------------------------
    # TRANSFORM
    # ------------------------------------------------------------------

    def transform(self, ctx: PipelineContext, extracted: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        transformed = []
        all_records: List[BaseModel] = []

        for item in extracted:
            deputy: Deputy = item["deputy"]
            records = []

            for raw in item["raw"]:
                ctx.state.transformation.processed += 1
                try:
                    record = self.normalize(deputy.id, raw)
                except Exception as e:
                    ctx.state.transformation.failed += 1
                    logger.warning(f"Skipping {self.record_type} of deputy {deputy.id}: {e}")
                    continue
                ctx.state.transformation.succeeded += 1
                records.append(record)

            all_records.extend(records)
            transformed.append({**item, "records": records})

        self.statistics = self.run_statistics(all_records)
        ctx.emit_progress(
            f"Normalized {len(all_records)} {self.record_type}s",
            {"statistics": self.statistics}
        )
        return transformed

    # ------------------------------------------------------------------
    # LOAD
    # ------------------------------------------------------------------

    def _windows_of(self, records: List[Dict[str, Any]]) -> List[str]:
        return sorted({
            window_key(r["year"], r["month"])
            for r in records if r.get("year") and r.get("month")
        })

    async def _queue_years(
        self,
        item: Dict[str, Any],
        options: RunOptions,
        now: datetime,
        pending: Dict[str, int]
    ) -> Dict[str, Any]:
        """
        Merge one deputy's records into its stored year documents and queue them.

        Returns the plan the summary pass needs once the year documents'
        commit outcome is known.
        """
        deputy: Deputy = item["deputy"]
        incoming = [r.model_dump() for r in item["records"]]

        by_year: Dict[int, List[Dict[str, Any]]] = defaultdict(list)
        for record in incoming:
            by_year[record.get("year") or 0].append(record)

        stored_years = await self.store.list_documents(self.years_collection(deputy.id))

        merged_years: Dict[int, List[Dict[str, Any]]] = {}
        year_paths: Dict[int, str] = {}
        skipped = 0
        for year in sorted(by_year):
            existing = (stored_years.get(str(year)) or {}).get("records") or []
            merged = self.engine.merge_records(
                existing,
                by_year[year],
                key_field=self.key_field,
                window=str(year),
                record_type=self.record_type,
                ignore_fields=self.volatile_fields
            )
            merged_years[year] = merged
            year_paths[year] = f"{self.years_collection(deputy.id)}/{year}"

            queued = await self.writer.enqueue_upsert(
                self.years_collection(deputy.id),
                str(year),
                {
                    "deputy_id": deputy.id,
                    "year": year,
                    "total_records": len(merged),
                    "records": merged,
                    "updated_at": now.isoformat(),
                }
            )
            if queued:
                pending[year_paths[year]] = len(by_year[year])
            else:
                skipped += len(by_year[year])

        if options.incremental:
            fetched_windows = item["windows"] or []
        else:
            fetched_windows = self._windows_of(incoming)

        return {
            "deputy": deputy,
            "stored_years": stored_years,
            "merged_years": merged_years,
            "year_paths": year_paths,
            "fetched_windows": fetched_windows,
            "processed_windows": item["processed_windows"],
            "skipped": skipped,
        }

    async def _queue_summary(self, plan: Dict[str, Any], committed_paths: set, now: datetime) -> None:
        """
        Queue the summary document of one deputy.

        A fetched window is marked refreshed only when its year document
        committed, or when it produced no records at all. Statistics cover
        committed data only.
        """
        deputy: Deputy = plan["deputy"]
        failed_years = {
            year for year, path in plan["year_paths"].items() if path not in committed_paths
        }

        years = dict(plan["stored_years"])
        for year, merged in plan["merged_years"].items():
            if year not in failed_years:
                years[str(year)] = {"records": merged}

        refreshed = [w for w in plan["fetched_windows"] if parse_window(w)[0] not in failed_years]
        if failed_years:
            logger.warning(
                f"Deputy {deputy.id}: year documents {sorted(failed_years)} not committed, "
                f"their windows stay stale"
            )

        all_records = [r for doc in years.values() for r in (doc.get("records") or [])]
        await self.writer.enqueue_upsert(
            self.root_collection,
            deputy.id,
            {
                "deputy": deputy.model_dump(),
                "statistics": self.engine.aggregate(all_records, self.value_field, self.group_by),
                "processed_windows": self.engine.update_processed_windows(
                    plan["processed_windows"], refreshed, now
                ),
                "last_updated": now.isoformat(),
            }
        )

    def _committed_paths(self) -> set:
        return {
            path for batch in self.writer.results if batch.error is None for path in batch.paths
        }

    async def load(self, ctx: PipelineContext, transformed: List[Dict[str, Any]]) -> LoadResult:
        options = ctx.options
        now = self.clock()
        pending: Dict[str, int] = {}
        plans = []

        # ------ PASS 1: year documents ------
        for index, item in enumerate(transformed, start=1):
            plans.append(await self._queue_years(item, options, now, pending))
            if index % 10 == 0:
                ctx.emit_progress(f"Queued {index}/{len(transformed)} deputies", {"completed": index})
        await self.writer.flush()

        # ------ PASS 2: summaries and run metadata ------
        committed_paths = self._committed_paths()
        for plan in plans:
            await self._queue_summary(plan, committed_paths, now)

        await self.writer.enqueue_upsert(
            self.root_collection,
            f"_metadata_{options.legislature}",
            {
                "processor": self.name,
                "legislature": options.legislature,
                "incremental": options.incremental,
                "options": options.model_dump(mode="json"),
                "deputies_processed": len(transformed),
                "statistics": self.statistics,
                "updated_at": now.isoformat(),
            }
        )
        await self.writer.commit()

        skipped = sum(plan["skipped"] for plan in plans)
        successes = sum(count for path, count in pending.items() if path in committed_paths)
        failures = sum(count for path, count in pending.items() if path not in committed_paths) + skipped

        ctx.state.load.processed = successes + failures
        ctx.state.load.succeeded = successes
        ctx.state.load.failed = failures

        logger.info(
            f"Load complete: {successes} {self.record_type}s committed, {failures} failed "
            f"({self.writer.stats.batches_committed} batches ok, {self.writer.stats.batches_failed} failed)"
        )

        return LoadResult(
            successes=successes,
            failures=failures,
            warnings=self.writer.stats.skipped_oversized,
            details={
                "writer": self.writer.stats.model_dump(),
                "statistics": self.statistics,
                "deputies_loaded": len(transformed),
            }
        )
