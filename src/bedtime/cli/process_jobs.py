"""CLI command for running book generation steps outside the web server.

Usage:
    python -m bedtime.cli process [OPTIONS]

Examples:
    # Run one step of the oldest queued job
    python -m bedtime.cli process

    # Run one step of a specific job
    python -m bedtime.cli process --job-id 7c9e6679-7425-40de-944b-e07fc1f90ae7

    # Keep going until the queue is empty (at most 50 steps)
    python -m bedtime.cli process --drain --max-steps 50

    # Verbose logging
    python -m bedtime.cli process -v
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace
from uuid import UUID

import structlog

from bedtime.core import timezone  # noqa: F401
from bedtime.core.config import Settings, configure_logging
from bedtime.core.database import setup_db_session
from bedtime.services.generation.capabilities import build_capabilities
from bedtime.services.storage.supabase_client import build_artifact_store
from bedtime.uow import create_uow_factory
from bedtime.workers.job_processor import JobProcessor, ProcessResult

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        prog="bedtime",
        description="Book generation job tools",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    process = subparsers.add_parser("process", help="Run queued generation steps")
    process.add_argument(
        "--job-id",
        type=UUID,
        help="Process this job instead of the oldest queued one",
    )
    process.add_argument(
        "--drain",
        action="store_true",
        help="Keep processing until no work remains (bounded by --max-steps)",
    )
    process.add_argument(
        "--max-steps",
        type=int,
        default=None,
        help="Maximum number of steps to run when draining (default: unlimited)",
    )
    process.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


async def run_process(processor: JobProcessor, args: Namespace) -> list[ProcessResult]:
    """Run the steps requested on the command line."""
    if not args.drain:
        result = await processor.process_next(args.job_id)
        return [result] if result.processed else []
    if args.job_id is not None:
        return await processor.process_job_to_completion(args.job_id, max_steps=args.max_steps)
    return await processor.run_until_idle(max_steps=args.max_steps)


def print_summary(results: list[ProcessResult]) -> None:
    print("\n" + "=" * 60)
    print("Book Job Processing Summary")
    print("=" * 60)
    if not results:
        print("No queued jobs to process")
    for result in results:
        line = f"job {result.job_id} step={result.step.value if result.step else '-'} "
        line += f"-> {result.job_status.value if result.job_status else '-'}"
        if result.error:
            line += f" (error: {result.error})"
        print(line)
    print("=" * 60 + "\n")


async def async_main(argv: list[str] | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success or idle), 1 (error), 2 (a step failed)
    """
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    logger.info(
        "cli.started",
        job_id=str(args.job_id) if args.job_id else None,
        drain=args.drain,
        max_steps=args.max_steps,
    )

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    processor = JobProcessor(
        uow_factory=create_uow_factory(session_factory),
        store=build_artifact_store(settings),
        capabilities=build_capabilities(settings),
        settings=settings,
    )

    try:
        results = await run_process(processor, args)
    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        print("\nProcessing interrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        logger.error(
            "cli.unexpected_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        return 1

    print_summary(results)

    if any(result.error for result in results):
        logger.warning("cli.step_errors", steps=len(results))
        return 2
    logger.info("cli.success", steps=len(results))
    return 0


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
