"""
Unit tests for the pipeline orchestrator
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from ingestion.runner import PipelineOrchestrator, PipelinePhases
from models.base import RunStatus, StorageBackend
from schemas.pipeline import LoadResult, RunOptions, ValidationResult


def make_phases(
    validation=None,
    extracted=None,
    transformed=None,
    load_result=None,
    extract_error=None,
    load_error=None
):
    """Phases as mocks so tests can assert which ones ran"""
    def extract(ctx):
        ctx.state.extraction.processed = 4
        ctx.state.extraction.succeeded = 4
        if extract_error:
            raise extract_error
        return extracted if extracted is not None else ["a", "b", "c", "d"]

    def transform(ctx, data):
        ctx.state.transformation.processed = len(data)
        ctx.state.transformation.succeeded = len(data)
        return transformed if transformed is not None else [x.upper() for x in data]

    async def load(ctx, data):
        ctx.state.load.succeeded = 2
        if load_error:
            raise load_error
        return load_result

    return PipelinePhases(
        validate=MagicMock(return_value=validation or ValidationResult()),
        extract=MagicMock(side_effect=extract),
        transform=MagicMock(side_effect=transform),
        load=AsyncMock(side_effect=load),
    )


class TestPipelineOrchestrator:
    """Test phase sequencing, results and progress"""

    @pytest.mark.asyncio
    async def test_successful_run(self):
        phases = make_phases(load_result=LoadResult(successes=4, failures=0, details={"batches": 1}))
        orchestrator = PipelineOrchestrator("test", phases, RunOptions(legislature=57))

        result = await orchestrator.run()

        assert result.status == RunStatus.FINISHED
        assert result.successes == 4
        assert result.failures == 0
        assert result.destination == StorageBackend.MEMORY.value
        assert result.legislature == 57
        assert result.details["batches"] == 1
        assert result.details["counters"]["extraction"]["processed"] == 4
        assert result.extraction_seconds is not None
        assert result.load_seconds is not None
        phases.transform.assert_called_once()
        assert phases.transform.call_args.args[1] == ["a", "b", "c", "d"]
        assert phases.load.await_args.args[1] == ["A", "B", "C", "D"]

    @pytest.mark.asyncio
    async def test_validation_error_skips_all_io(self):
        """One validation error ends the run before extract or load"""
        phases = make_phases(validation=ValidationResult(errors=["Legislature is required"]))
        orchestrator = PipelineOrchestrator("test", phases, RunOptions())

        result = await orchestrator.run()

        assert result.status == RunStatus.ERROR
        assert [e.message for e in result.errors] == ["Legislature is required"]
        assert result.errors[0].code == "ValidationError"
        assert result.errors[0].context["phase"] == "validate"
        phases.extract.assert_not_called()
        phases.transform.assert_not_called()
        phases.load.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_validation_warnings_do_not_block(self):
        phases = make_phases(validation=ValidationResult(warnings=["long run"]))
        result = await PipelineOrchestrator("test", phases, RunOptions(legislature=57)).run()

        assert result.status == RunStatus.FINISHED
        assert result.warnings == 1
        assert result.details["validation_warnings"] == ["long run"]

    @pytest.mark.asyncio
    async def test_dry_run_skips_load(self):
        phases = make_phases()
        result = await PipelineOrchestrator("test", phases, RunOptions(legislature=57, dry_run=True)).run()

        assert result.status == RunStatus.FINISHED
        assert result.destination == "dry-run"
        assert result.successes == 4
        assert result.failures == 0
        phases.load.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_finalize_falls_back_to_counters(self):
        """Without a LoadResult the load counters are reported"""
        result = await PipelineOrchestrator("test", make_phases(load_result=None), RunOptions()).run()

        assert result.status == RunStatus.FINISHED
        assert result.successes == 2

    @pytest.mark.asyncio
    async def test_extract_exception_becomes_error_result(self):
        phases = make_phases(extract_error=RuntimeError("network down"))
        result = await PipelineOrchestrator("test", phases, RunOptions()).run()

        assert result.status == RunStatus.ERROR
        assert result.successes == 0
        assert result.failures == 4
        assert result.details["failed_phase"] == "extract"
        assert result.errors[0].code == "RuntimeError"
        assert "network down" in result.errors[0].message
        phases.transform.assert_not_called()

    @pytest.mark.asyncio
    async def test_load_exception_reports_partial_successes(self):
        phases = make_phases(load_error=RuntimeError("store unavailable"))
        result = await PipelineOrchestrator("test", phases, RunOptions()).run()

        assert result.status == RunStatus.ERROR
        assert result.successes == 2
        assert result.failures == 2
        assert result.details["failed_phase"] == "load"

    @pytest.mark.asyncio
    async def test_failure_count_is_at_least_one(self):
        """A failed run never reports zero failures"""
        phases = make_phases(extract_error=ValueError("bad"))

        def extract(ctx):
            raise ValueError("bad")

        phases.extract = MagicMock(side_effect=extract)
        result = await PipelineOrchestrator("test", phases, RunOptions()).run()

        assert result.failures == 1

    @pytest.mark.asyncio
    async def test_progress_events_in_order(self):
        events = []
        orchestrator = PipelineOrchestrator("test", make_phases(load_result=LoadResult()), RunOptions())
        orchestrator.on_progress(lambda e: events.append((e.status, e.percent_complete)))

        await orchestrator.run()

        assert events == [
            (RunStatus.INITIATED, 0),
            (RunStatus.EXTRACTING, 25),
            (RunStatus.TRANSFORMING, 50),
            (RunStatus.LOADING, 75),
            (RunStatus.FINISHED, 100),
        ]

    @pytest.mark.asyncio
    async def test_phase_progress_reported_at_current_status(self):
        def extract(ctx):
            ctx.emit_progress("chunk done", {"completed": 1})
            return []

        phases = make_phases()
        phases.extract = MagicMock(side_effect=extract)
        events = []
        orchestrator = PipelineOrchestrator("test", phases, RunOptions())
        orchestrator.on_progress(events.append)

        await orchestrator.run()

        chunk_event = next(e for e in events if e.message == "chunk done")
        assert chunk_event.status == RunStatus.EXTRACTING
        assert chunk_event.details == {"completed": 1}

    @pytest.mark.asyncio
    async def test_listener_failure_does_not_break_run(self):
        received = []
        orchestrator = PipelineOrchestrator("test", make_phases(), RunOptions())

        def broken(event):
            raise RuntimeError("listener bug")

        orchestrator.on_progress(broken)
        orchestrator.on_progress(received.append)

        result = await orchestrator.run()

        assert result.status == RunStatus.FINISHED
        assert len(received) == 5

    @pytest.mark.asyncio
    async def test_state_frozen_after_terminal_status(self):
        orchestrator = PipelineOrchestrator("test", make_phases(), RunOptions())
        await orchestrator.run()
        finished_at = orchestrator.state.finished_at

        orchestrator._transition(RunStatus.LOADING, "late")

        assert orchestrator.state.status == RunStatus.FINISHED
        assert orchestrator.state.finished_at == finished_at
