#!/usr/bin/env python3
# backend/pawsync/worker.py
"""
pawsync command line and worker process.

Subcommands:
  init-db      apply the database schema
  sweep        capture pets missing images (in process)
  retry        re-run stalled screenshot requests
  capture      run the pipeline for one pet
  run-batch    workflow runner side: process a dispatched pets_batch payload
  dispatch     split pets missing images into batches and trigger the workflow
  reconcile    compare image flags with the object store
  readiness    recompute the readiness snapshot
  worker       long-running scheduled sweep and reconcile loop

Every subcommand prints a JSON summary on stdout and exits non-zero when the
work could not be done at all. Per-pet failures inside a batch do not change
the exit code.
"""

import argparse
import asyncio
import json
import signal
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional

from pydantic import BaseModel, ValidationError

from .config import settings
from .constants import RECONCILE_ALL
from .database import async_db
from .database.exceptions import DatabaseOperationError
from .database.migrations import initialize_database
from .enums import LogEmoji, LoggerName, PetType
from .exceptions import PawsyncError
from .models.dispatch_model import DispatchPayload
from .services.logger import configure_logging, get_service_logger
from .services.service_container import ServiceContainer, build_services
from .workers.pipeline_worker import PipelineWorker

logger = get_service_logger(LoggerName.BATCH_RUNNER, LogEmoji.STARTUP)


def _print(result: Any) -> None:
    if isinstance(result, BaseModel):
        print(result.model_dump_json(indent=2))
    else:
        print(json.dumps(result, indent=2, default=str))


@asynccontextmanager
async def open_services() -> AsyncIterator[ServiceContainer]:
    """Open the database pool and wire services for one CLI invocation."""
    await async_db.initialize()
    services = build_services(settings, async_db)
    try:
        yield services
    finally:
        await services.close()
        await async_db.close()


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


async def cmd_init_db(args: argparse.Namespace) -> int:
    await async_db.initialize()
    try:
        _print(await initialize_database(async_db))
    finally:
        await async_db.close()
    return 0


async def cmd_sweep(args: argparse.Namespace) -> int:
    async with open_services() as services:
        batch = await services.orchestrator.run_sweep(args.limit, args.pet_type)
        await services.status_service.compute_readiness()
    _print(batch.model_dump(exclude={"results"}) if not args.verbose else batch)
    return 0


async def cmd_retry(args: argparse.Namespace) -> int:
    async with open_services() as services:
        batch = await services.orchestrator.retry_pending(args.limit)
        await services.status_service.compute_readiness()
    _print(batch.model_dump(exclude={"results"}) if not args.verbose else batch)
    return 0


async def cmd_capture(args: argparse.Namespace) -> int:
    async with open_services() as services:
        result = await services.orchestrator.process_single(args.pet_id, force=args.force)
    if result is None:
        logger.error(f"Pet {args.pet_id} has no record")
        return 1
    _print(result)
    return 0 if result.succeeded else 1


def _read_pets_batch(value: str) -> str:
    if value == "-":
        return sys.stdin.read()
    return value


async def cmd_run_batch(args: argparse.Namespace) -> int:
    try:
        payload = DispatchPayload.from_inputs(_read_pets_batch(args.pets_batch), args.batch_id)
    except (ValueError, ValidationError) as e:
        logger.error("Invalid pets_batch payload", exception=e)
        return 2

    candidates = [item.to_candidate() for item in payload.pets_batch]
    logger.info(
        f"Received batch {payload.batch_id} with {len(candidates)} pets",
        extra_context={"batch_id": payload.batch_id},
    )
    async with open_services() as services:
        batch = await services.orchestrator.run_batch(candidates, batch_id=payload.batch_id)
        await services.status_service.compute_readiness()
    _print(batch)
    return 0


async def cmd_dispatch(args: argparse.Namespace) -> int:
    async with open_services() as services:
        if services.dispatcher is None:
            logger.error("Workflow dispatch is not configured (GITHUB_TOKEN/OWNER/REPO)")
            return 1
        result = await services.dispatcher.dispatch_missing(args.limit, args.pet_type)
    _print(result)
    return 0 if not result.failed_batches else 1


def _sample_size(value: str):
    if value == RECONCILE_ALL:
        return RECONCILE_ALL
    size = int(value)
    if size < 1:
        raise argparse.ArgumentTypeError("sample size must be positive or 'all'")
    return size


async def cmd_reconcile(args: argparse.Namespace) -> int:
    sample_size = RECONCILE_ALL if args.all else args.sample_size
    async with open_services() as services:
        report = await services.reconciler.reconcile(
            sample_size, auto_fix=args.auto_fix, pet_type=args.pet_type
        )
        orphans = None
        if args.orphans:
            orphans = await services.reconciler.find_orphaned_images(args.pet_type)

    if orphans is None:
        _print(report)
    else:
        _print(
            {
                "report": report.model_dump(mode="json"),
                "orphans": [orphan.model_dump(mode="json") for orphan in orphans],
            }
        )
    return 0


async def cmd_readiness(args: argparse.Namespace) -> int:
    async with open_services() as services:
        _print(await services.status_service.compute_readiness())
    return 0


async def cmd_worker(args: argparse.Namespace) -> int:
    settings.ensure_directories()
    async with open_services() as services:
        worker = PipelineWorker.from_services(services, settings)
        await worker.start()
        task = asyncio.create_task(worker.run(), name="pipeline-worker")

        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, task.cancel)

        try:
            await task
        except asyncio.CancelledError:
            logger.info("Shutdown signal received", emoji=LogEmoji.SHUTDOWN)
        finally:
            await worker.stop()
    return 0


COMMANDS = {
    "init-db": cmd_init_db,
    "sweep": cmd_sweep,
    "retry": cmd_retry,
    "capture": cmd_capture,
    "run-batch": cmd_run_batch,
    "dispatch": cmd_dispatch,
    "reconcile": cmd_reconcile,
    "readiness": cmd_readiness,
    "worker": cmd_worker,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pawsync",
        description="Pet image acquisition and sync pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s sweep --limit 20 --pet-type dog
  %(prog)s run-batch --pets-batch "$PETS_BATCH" --batch-id "$BATCH_ID"
  %(prog)s reconcile --all --auto-fix
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Apply the database schema")

    for name, help_text in (
        ("sweep", "Capture pets missing images"),
        ("retry", "Re-run stalled screenshot requests"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--limit", type=int, default=None)
        cmd.add_argument("--verbose", action="store_true", help="Include per-pet results")
        if name == "sweep":
            cmd.add_argument("--pet-type", type=PetType, choices=list(PetType), default=None)

    capture = sub.add_parser("capture", help="Run the pipeline for one pet")
    capture.add_argument("pet_id")
    capture.add_argument("--force", action="store_true", help="Recapture even if a JPEG exists")

    run_batch = sub.add_parser("run-batch", help="Process a dispatched pets_batch payload")
    run_batch.add_argument("--pets-batch", required=True, help="JSON array, or - for stdin")
    run_batch.add_argument("--batch-id", required=True)

    dispatch = sub.add_parser("dispatch", help="Trigger workflow runs for pets missing images")
    dispatch.add_argument("--limit", type=int, default=settings.pipeline_sweep_limit)
    dispatch.add_argument("--pet-type", type=PetType, choices=list(PetType), default=None)

    reconcile = sub.add_parser("reconcile", help="Compare image flags with the object store")
    reconcile.add_argument("--sample-size", type=_sample_size, default=settings.reconcile_sample_size)
    reconcile.add_argument("--all", action="store_true", help="Check every pet")
    reconcile.add_argument("--auto-fix", action="store_true")
    reconcile.add_argument("--pet-type", type=PetType, choices=list(PetType), default=None)
    reconcile.add_argument("--orphans", action="store_true", help="Also list orphaned objects")

    sub.add_parser("readiness", help="Recompute the readiness snapshot")
    sub.add_parser("worker", help="Run the scheduled pipeline worker")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings.log_level, settings.log_file)

    try:
        return asyncio.run(COMMANDS[args.command](args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user", emoji=LogEmoji.SHUTDOWN)
        return 130
    except (PawsyncError, DatabaseOperationError) as e:
        logger.error(f"{args.command} failed", exception=e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
