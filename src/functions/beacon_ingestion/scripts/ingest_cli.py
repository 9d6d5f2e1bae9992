"""
Command-line interface for beacon chain slot ingestion.

Resumes from the stored ``last_processed_slot`` checkpoint, ingests every
slot up to the current head in batches, then appends a graffiti stats
snapshot for that head. All tunables come from the environment; flags
override them for a single run.

Usage:
    python ingest_cli.py
    python ingest_cli.py --batch-size 200 --concurrency 100 --verbose
    python ingest_cli.py --skip-stats --output-format json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[4]))

from src.functions.beacon_ingestion.core.config import load_settings
from src.functions.beacon_ingestion.core.errors import HeadSlotError, StartupError
from src.functions.beacon_ingestion.core.pipelines.run import run_ingestion
from src.shared.batch import CancellationToken, install_signal_handlers
from src.shared.utils.config_validator import ConfigurationError
from src.shared.utils.env import load_env
from src.shared.utils.logging import log_settings, setup_logging

logger = logging.getLogger(__name__)


def setup_cli_parser() -> argparse.ArgumentParser:
    """Create argument parser for the ingestion CLI."""
    parser = argparse.ArgumentParser(
        description="Ingest beacon chain blocks up to the head slot and refresh graffiti stats."
    )

    parser.add_argument(
        "--batch-size",
        type=int,
        help="Slots per checkpointed batch (overrides BATCH_SIZE)",
    )

    parser.add_argument(
        "--concurrency",
        type=int,
        help="Max concurrent block fetches inside a batch (overrides CONCURRENCY_LIMIT)",
    )

    parser.add_argument(
        "--retry-limit",
        type=int,
        help="Attempts per fetch before the slot is marked failed (overrides RETRY_LIMIT)",
    )

    parser.add_argument(
        "--graffiti",
        type=str,
        help="Graffiti substring used for the stats step (overrides GRAFFITI_SEARCH)",
    )

    parser.add_argument(
        "--skip-stats",
        action="store_true",
        help="Only ingest blocks; do not compute the stats snapshot",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set logging level (default: LOG_LEVEL env or INFO)",
    )

    parser.add_argument(
        "--output-format",
        choices=["text", "json"],
        default="text",
        help="Output format for results (default: text)",
    )

    parser.add_argument(
        "--env-file",
        type=str,
        help="Load environment from this file instead of discovering .env files",
    )

    return parser


def validate_args(args: argparse.Namespace) -> List[str]:
    """Validate command line arguments and return any errors."""
    errors = []

    if args.batch_size is not None and args.batch_size < 1:
        errors.append("--batch-size must be at least 1")

    if args.concurrency is not None and args.concurrency < 1:
        errors.append("--concurrency must be at least 1")

    if args.retry_limit is not None and args.retry_limit < 1:
        errors.append("--retry-limit must be at least 1")

    if args.graffiti is not None and not args.graffiti.strip():
        errors.append("--graffiti cannot be empty")

    return errors


def print_results(result: Dict[str, Any]) -> None:
    """Print run results in a human-readable format."""
    print("\n" + "=" * 60)
    print("BEACON INGESTION RESULTS")
    print("=" * 60)

    print(f"Head slot:   {result.get('head_slot')}")
    print(f"Start slot:  {result.get('start_slot')}")

    ingestion = result.get("ingestion")
    if ingestion is None:
        print("\nNo new slots to process.")
    else:
        print(f"\nSlots processed: {ingestion['processed']}/{ingestion['total_slots']}")
        print(f"   Stored:  {ingestion['stored']}")
        print(f"   Skipped: {ingestion['skipped']}")
        print(f"   Failed:  {ingestion['failed']}")
        print(f"Batches completed: {ingestion['batches_completed']}/{ingestion['total_batches']}")
        print(f"Checkpoint:        {ingestion['last_committed_slot']}")
        if ingestion.get("recovered"):
            print(f"   Recovered on retry: {ingestion['recovered']}")
        if ingestion.get("failed_slots"):
            shown = ", ".join(str(slot) for slot in ingestion["failed_slots"][:20])
            more = len(ingestion["failed_slots"]) - 20
            print(f"Failed slots:      {shown}" + (f" (+{more} more)" if more > 0 else ""))

    stats = result.get("stats")
    if stats:
        search = stats["graffiti_search"]
        print(f"\nStats at slot {stats['slot']}:")
        print(f"   {search} proposers:      {stats['unique_proposers']}")
        print(f"   Newly active_ongoing:    {stats['newly_active_ongoing']}")
        print(f"   Unique operators:        {stats['unique_operators']}")
        print(f"   Active validators total: {stats['active_ongoing']}")

    if result.get("cancelled"):
        print("\nRun was interrupted; the next run resumes from the checkpoint.")

    print(f"\nDuration: {result.get('duration_seconds', 0):.2f}s")
    print("=" * 60 + "\n")


def print_json_results(result: Dict[str, Any]) -> None:
    """Print results in JSON format."""
    print(json.dumps(result, indent=2, default=str))


def main(argv: Optional[List[str]] = None) -> int:
    """Run one ingestion pass and return the process exit code."""
    parser = setup_cli_parser()
    args = parser.parse_args(argv)

    validation_errors = validate_args(args)
    if validation_errors:
        print("Argument validation errors:")
        for error in validation_errors:
            print(f"   - {error}")
        return 2

    load_env(args.env_file)
    setup_logging(level="DEBUG" if args.verbose else args.log_level)

    cancel_token = CancellationToken()
    install_signal_handlers(cancel_token)

    start_time = time.time()

    try:
        settings = load_settings(
            {
                "batch_size": args.batch_size,
                "concurrency_limit": args.concurrency,
                "retry_limit": args.retry_limit,
                "graffiti_search": args.graffiti,
            }
        )
        log_settings(logger, "Ingestion settings", settings.snapshot())

        result = asyncio.run(
            run_ingestion(settings, cancel_token=cancel_token, skip_stats=args.skip_stats)
        )

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        print(f"Configuration error: {e}")
        return 2

    except (StartupError, HeadSlotError) as e:
        logger.error(f"Run aborted: {e}")
        print(f"FAILED: {e}")
        return 1

    except Exception as e:
        logger.error(f"Unexpected error during ingestion: {e}", exc_info=True)
        print(f"UNEXPECTED ERROR: {e}")
        return 1

    result["cli_duration_seconds"] = time.time() - start_time

    if args.output_format == "json":
        print_json_results(result)
    else:
        print_results(result)

    if result.get("cancelled"):
        logger.info("Graceful shutdown completed.")
    else:
        logger.info(f"Ingestion run finished in {result['cli_duration_seconds']:.2f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
