"""
Script to run one processor of the legislative ETL pipeline

Examples:
    python scripts/run_etl.py expenses --legislatura 57 --limite 10 --mock
    python scripts/run_etl.py speeches --legislatura 57 --deputado 204554 --atualizar --postgres
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.logging import setup_logging
from ingestion.processors.registry import PROCESSORS, build_store, run_pipeline
from models.base import RunStatus, StorageBackend
from schemas.pipeline import ProgressEvent, RunOptions

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Extract Câmara dos Deputados data into the document store"
    )
    parser.add_argument("processor", choices=sorted(PROCESSORS), help="Data entity to process")
    parser.add_argument("--legislatura", type=int, default=settings.SCHEDULED_LEGISLATURE,
                        help="Legislature number (default: %(default)s)")
    parser.add_argument("--limite", type=int, help="Process at most this many deputies")
    parser.add_argument("--deputado", help="Process a single deputy by id")
    parser.add_argument("--partido", help="Only deputies of this party")
    parser.add_argument("--uf", help="Only deputies of this state")
    parser.add_argument("--ano", type=int, help="Only this year")
    parser.add_argument("--mes", type=int, help="Only this month (requires --ano)")
    parser.add_argument("--data-inicio", dest="data_inicio", help="Start date YYYY-MM-DD (speeches)")
    parser.add_argument("--data-fim", dest="data_fim", help="End date YYYY-MM-DD (speeches)")
    parser.add_argument("--atualizar", action="store_true",
                        help="Incremental mode: fetch only stale recent months and merge")
    parser.add_argument("--concorrencia", type=int, default=settings.DEFAULT_CONCURRENCY,
                        help="Deputies fetched concurrently (default: %(default)s)")
    parser.add_argument("--dry-run", action="store_true", help="Extract and transform without writing")
    parser.add_argument("--verbose", action="store_true", help="Debug logging and progress output")

    destination = parser.add_mutually_exclusive_group()
    destination.add_argument("--postgres", dest="destination", action="store_const",
                             const=StorageBackend.POSTGRES, help="Write to the Postgres document store")
    destination.add_argument("--pc", dest="destination", action="store_const",
                             const=StorageBackend.LOCAL_FILE, help="Write JSON files to LOCAL_EXPORT_DIR")
    destination.add_argument("--mock", dest="destination", action="store_const",
                             const=StorageBackend.MEMORY, help="Write to an in-memory store")
    return parser


def options_from_args(args: argparse.Namespace) -> RunOptions:
    return RunOptions(
        destination=args.destination or StorageBackend(settings.STORAGE_BACKEND),
        dry_run=args.dry_run,
        verbose=args.verbose,
        incremental=args.atualizar,
        legislature=args.legislatura,
        limit=args.limite,
        deputy_id=args.deputado,
        party=args.partido,
        state=args.uf,
        year=args.ano,
        month=args.mes,
        start_date=args.data_inicio,
        end_date=args.data_fim,
        concurrency=args.concorrencia
    )


def log_progress(event: ProgressEvent) -> None:
    logger.info(f"[{event.percent_complete:5.1f}%] {event.status.value}: {event.message}")


async def run_etl(options: RunOptions, processor: str) -> int:
    """Run the pipeline and print its result; returns the exit code"""
    store = build_store(options.destination)

    try:
        result = await run_pipeline(
            processor,
            options,
            store,
            on_progress=log_progress if options.verbose else None
        )
    finally:
        await store.close()

    print(result.model_dump_json(indent=2))

    if result.status == RunStatus.ERROR:
        logger.error(f"ETL {processor} failed: {result.failures} failures")
        return 1

    logger.info(f"ETL {processor} completed: {result.successes} written, {result.failures} failed")
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging("DEBUG" if args.verbose else None)
    return asyncio.run(run_etl(options_from_args(args), args.processor))


if __name__ == "__main__":
    sys.exit(main())
