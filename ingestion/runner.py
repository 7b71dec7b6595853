# ============================================================================
# File: ingestion/runner.py
# Description: Phased pipeline orchestrator that always returns a result
# ============================================================================
"""
Pipeline Runner - Orchestrates Validate, Extract, Transform, Load.

This module provides the single concrete orchestrator every processor runs
through:
- Four injected phase callables instead of subclass overrides
- Ordered, synchronous progress events for every state transition
- Per-phase wall-clock durations and counters
- Dry runs that stop before the load phase
- Any phase failure converted into an ERROR result, never raised
"""

import inspect
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from models.base import RunStatus
from schemas.pipeline import (
    ETLErrorDetail,
    LoadResult,
    ProgressEvent,
    RunOptions,
    RunResult,
    ValidationResult,
)
from core.exceptions import ETLException, PhaseFatalError, ValidationError
import logging

logger = logging.getLogger(__name__)


PROGRESS_PERCENT = {
    RunStatus.INITIATED: 0,
    RunStatus.EXTRACTING: 25,
    RunStatus.TRANSFORMING: 50,
    RunStatus.LOADING: 75,
    RunStatus.FINISHED: 100,
    RunStatus.ERROR: 0,
    RunStatus.CANCELLED: 0,
}


@dataclass
class PhaseCounters:
    """Counters of one phase"""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    warnings: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "warnings": self.warnings,
        }


@dataclass
class RunState:
    """
    Mutable record of one run, owned by its orchestrator.

    Frozen once a terminal status is reached: further transitions are
    ignored.
    """
    status: RunStatus = RunStatus.INITIATED
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    phase_durations: Dict[str, float] = field(default_factory=dict)
    extraction: PhaseCounters = field(default_factory=PhaseCounters)
    transformation: PhaseCounters = field(default_factory=PhaseCounters)
    load: PhaseCounters = field(default_factory=PhaseCounters)
    validation_warnings: List[str] = field(default_factory=list)
    errors: List[ETLErrorDetail] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.transformation.processed or self.extraction.processed

    @property
    def total_warnings(self) -> int:
        return (
            len(self.validation_warnings)
            + self.extraction.warnings
            + self.transformation.warnings
            + self.load.warnings
        )

    def counters(self) -> Dict[str, Dict[str, int]]:
        return {
            "extraction": self.extraction.as_dict(),
            "transformation": self.transformation.as_dict(),
            "load": self.load.as_dict(),
        }


@dataclass
class PipelineContext:
    """What each phase receives: run options, live counters, progress hook"""
    options: RunOptions
    state: RunState
    emit_progress: Callable[..., None]


@dataclass
class PipelinePhases:
    """
    The four phase functions of a processor.

    validate(ctx) -> ValidationResult
    extract(ctx) -> extracted data
    transform(ctx, extracted) -> transformed data
    load(ctx, transformed) -> LoadResult or None

    Each may be a plain function or a coroutine function.
    """
    validate: Callable[..., Any]
    extract: Callable[..., Any]
    transform: Callable[..., Any]
    load: Callable[..., Any]


async def _call(fn: Callable[..., Any], *args) -> Any:
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class PipelineOrchestrator:
    """
    Production-grade pipeline orchestrator.

    Responsibilities:
    - Run validate → extract → transform → load → finalize in strict order
    - Emit progress events to registered listeners, in registration order
    - Record durations and counters per phase
    - Turn validation failures and phase exceptions into ERROR results
    """

    def __init__(self, name: str, phases: PipelinePhases, options: RunOptions):
        self.name = name
        self.phases = phases
        self.options = options
        self.state = RunState()
        self._listeners: List[Callable[[ProgressEvent], None]] = []
        self.context = PipelineContext(
            options=options,
            state=self.state,
            emit_progress=self._emit_phase_progress
        )

    def on_progress(self, callback: Callable[[ProgressEvent], None]) -> None:
        """Register a listener; events are delivered synchronously and in order"""
        self._listeners.append(callback)

    def _emit(self, event: ProgressEvent) -> None:
        for listener in self._listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Progress listener failed: {e}")

    def _emit_phase_progress(self, message: str, details: Any = None) -> None:
        """Progress from inside a phase, reported at the current status"""
        self._emit(ProgressEvent(
            status=self.state.status,
            percent_complete=PROGRESS_PERCENT[self.state.status],
            message=message,
            details=details
        ))

    def _transition(self, status: RunStatus, message: str, details: Any = None) -> None:
        if self.state.status.is_terminal:
            logger.warning(
                f"[{self.name}] Ignoring transition to {status.value}: run already {self.state.status.value}"
            )
            return

        self.state.status = status
        if status.is_terminal:
            self.state.finished_at = datetime.now(timezone.utc)

        logger.debug(f"[{self.name}] {status.value}: {message}")
        self._emit(ProgressEvent(
            status=status,
            percent_complete=PROGRESS_PERCENT[status],
            message=message,
            details=details
        ))

    def _elapsed(self) -> float:
        end = self.state.finished_at or datetime.now(timezone.utc)
        return (end - self.state.started_at).total_seconds()

    async def _timed(self, phase: str, fn: Callable[..., Any], *args) -> Any:
        start = time.monotonic()
        try:
            return await _call(fn, *args)
        finally:
            self.state.phase_durations[phase] = time.monotonic() - start

    async def run(self) -> RunResult:
        """
        Execute the pipeline.

        Returns:
            RunResult in every case; exceptions from phases are reported as
            an ERROR result, never propagated
        """
        logger.info(f"[{self.name}] Starting pipeline run")
        self._emit(ProgressEvent(
            status=RunStatus.INITIATED,
            percent_complete=0,
            message=f"{self.name} initiated"
        ))

        phase = "validate"
        try:
            # --------------------------------------------------
            # PHASE 1: VALIDATION
            # --------------------------------------------------
            validation = await _call(self.phases.validate, self.context)
            if validation is None:
                validation = ValidationResult()

            self.state.validation_warnings = list(validation.warnings)
            for warning in validation.warnings:
                logger.warning(f"[{self.name}] {warning}")

            if not validation.is_valid:
                return self._fail_validation(validation.errors)

            # --------------------------------------------------
            # PHASE 2: EXTRACTION
            # --------------------------------------------------
            phase = "extract"
            self._transition(RunStatus.EXTRACTING, "Extracting data")
            extracted = await self._timed("extraction", self.phases.extract, self.context)
            logger.info(
                f"[{self.name}] Extraction complete: "
                f"{self.state.extraction.succeeded} succeeded, {self.state.extraction.failed} failed "
                f"({self.state.phase_durations['extraction']:.2f}s)"
            )

            # --------------------------------------------------
            # PHASE 3: TRANSFORMATION
            # --------------------------------------------------
            phase = "transform"
            self._transition(RunStatus.TRANSFORMING, "Transforming data")
            transformed = await self._timed("transformation", self.phases.transform, self.context, extracted)
            logger.info(
                f"[{self.name}] Transformation complete: "
                f"{self.state.transformation.succeeded} succeeded, {self.state.transformation.failed} failed"
            )

            # --------------------------------------------------
            # DRY RUN: STOP BEFORE LOAD
            # --------------------------------------------------
            if self.options.dry_run:
                return self._finish_dry_run()

            # --------------------------------------------------
            # PHASE 4: LOAD
            # --------------------------------------------------
            phase = "load"
            self._transition(RunStatus.LOADING, "Loading data")
            load_result = await self._timed("load", self.phases.load, self.context, transformed)

            # --------------------------------------------------
            # PHASE 5: FINALIZE
            # --------------------------------------------------
            phase = "finalize"
            return self._finalize(load_result)

        except Exception as e:
            return self._fail_phase(phase, e)

    def _fail_validation(self, errors: List[str]) -> RunResult:
        for message in errors:
            error = ValidationError(message, context={"phase": "validate", "run": self.name})
            logger.error(f"[{self.name}] Validation error: {message}", extra={"error_context": error.to_dict()})
            self.state.errors.append(ETLErrorDetail(
                code=type(error).__name__,
                message=error.message,
                timestamp=error.timestamp,
                context=error.to_dict()["context"]
            ))

        self._transition(RunStatus.ERROR, "Validation failed", {"errors": list(errors)})
        return self._result(successes=0, failures=len(errors), details={"validation_errors": list(errors)})

    def _finish_dry_run(self) -> RunResult:
        would_write = self.state.processed
        logger.info(f"[{self.name}] Dry run: skipping load of {would_write} records")
        self._transition(RunStatus.FINISHED, "Dry run complete", {"would_write": would_write})
        return self._result(
            successes=would_write,
            failures=0,
            destination="dry-run",
            details={"dry_run": True}
        )

    def _finalize(self, load_result: Optional[LoadResult]) -> RunResult:
        successes = self.state.load.succeeded
        failures = self.state.load.failed
        details: Dict[str, Any] = {}

        if load_result is not None:
            successes = load_result.successes
            failures = load_result.failures
            self.state.load.warnings += load_result.warnings
            details.update(load_result.details)

        self._transition(
            RunStatus.FINISHED,
            f"{self.name} finished",
            {"successes": successes, "failures": failures}
        )
        logger.info(
            f"[{self.name}] Run finished: {successes} succeeded, {failures} failed "
            f"in {self._elapsed():.2f}s"
        )
        return self._result(successes=successes, failures=failures, details=details)

    def _fail_phase(self, phase: str, error: Exception) -> RunResult:
        if isinstance(error, ETLException):
            fatal = PhaseFatalError(error.message, phase=phase, context=dict(error.context), original_exception=error)
        else:
            fatal = PhaseFatalError(str(error) or type(error).__name__, phase=phase, original_exception=error)

        logger.error(
            f"[{self.name}] Phase '{phase}' failed: {fatal.message}",
            extra={"error_context": fatal.to_dict()},
            exc_info=error
        )
        self.state.errors.append(ETLErrorDetail(
            code=type(error).__name__,
            message=fatal.message,
            context={"phase": phase}
        ))

        successes = self.state.load.succeeded
        failures = self.state.processed - successes
        if failures <= 0:
            failures = 1

        self._transition(RunStatus.ERROR, f"Phase '{phase}' failed: {fatal.message}")
        return self._result(successes=successes, failures=failures, details={"failed_phase": phase})

    def _result(
        self,
        successes: int,
        failures: int,
        destination: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> RunResult:
        details = dict(details or {})
        details["counters"] = self.state.counters()
        if self.state.validation_warnings:
            details["validation_warnings"] = list(self.state.validation_warnings)

        return RunResult(
            status=self.state.status,
            successes=successes,
            failures=failures,
            warnings=self.state.total_warnings,
            duration_seconds=round(self._elapsed(), 3),
            extraction_seconds=self.state.phase_durations.get("extraction"),
            transformation_seconds=self.state.phase_durations.get("transformation"),
            load_seconds=self.state.phase_durations.get("load"),
            destination=destination or self.options.destination.value,
            legislature=self.options.legislature,
            details=details,
            errors=list(self.state.errors)
        )
