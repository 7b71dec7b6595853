import pytest
from unittest.mock import AsyncMock, patch
from core.config import Settings
from ingestion.scheduler import ETLScheduler
from models.base import RunStatus
from schemas.pipeline import RunResult


def finished(successes=1):
    return RunResult(status=RunStatus.FINISHED, successes=successes, destination="memory")


@pytest.mark.asyncio
async def test_scheduler_initialization(memory_store):
    scheduler = ETLScheduler(memory_store)
    assert scheduler.scheduler is not None
    assert scheduler.recent_runs() == []
    assert scheduler.last_run() is None


@pytest.mark.asyncio
async def test_scheduler_job_runs_each_processor_incrementally(memory_store):
    config = Settings(SCHEDULED_LEGISLATURE=56, DEFAULT_CONCURRENCY=2)

    with patch("ingestion.scheduler.run_pipeline", new=AsyncMock(return_value=finished())) as mock_run:
        scheduler = ETLScheduler(memory_store, config=config)
        results = await scheduler.run_etl_job()

    assert len(results) == 2
    kinds = [c.args[0] for c in mock_run.await_args_list]
    assert kinds == ["expenses", "speeches"]
    options = mock_run.await_args_list[0].args[1]
    assert options.incremental is True
    assert options.legislature == 56
    assert options.concurrency == 2


@pytest.mark.asyncio
async def test_scheduler_failure_does_not_stop_next_processor(memory_store):
    run = AsyncMock(side_effect=[RuntimeError("boom"), finished(3)])

    with patch("ingestion.scheduler.run_pipeline", new=run):
        scheduler = ETLScheduler(memory_store)
        results = await scheduler.run_etl_job()

    assert results[0].status == RunStatus.ERROR
    assert results[0].errors[0].message == "boom"
    assert results[1].successes == 3
    assert scheduler.recent_runs()[0]["processor"] == "speeches"
    assert scheduler.last_run()["result"].successes == 3


@pytest.mark.asyncio
async def test_history_is_bounded(memory_store):
    with patch("ingestion.scheduler.run_pipeline", new=AsyncMock(return_value=finished())):
        scheduler = ETLScheduler(memory_store, history_size=3)
        await scheduler.run_etl_job()
        await scheduler.run_etl_job()

    assert len(scheduler.recent_runs()) == 3
