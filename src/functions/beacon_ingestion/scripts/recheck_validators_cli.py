"""
Re-check the status of every validator already stored.

Loads all validator indices from ``beacon_validators`` and refreshes their
status, withdrawal credentials and withdrawal address from the beacon node.
Safe to interrupt and rerun at any time.

Usage:
    python recheck_validators_cli.py
    python recheck_validators_cli.py --concurrency 100 --output-format json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[4]))

from src.functions.beacon_ingestion.core.config import load_settings
from src.functions.beacon_ingestion.core.errors import StartupError
from src.functions.beacon_ingestion.core.pipelines.run import run_recheck
from src.shared.batch import CancellationToken, install_signal_handlers
from src.shared.utils.config_validator import ConfigurationError
from src.shared.utils.env import load_env
from src.shared.utils.logging import log_settings, setup_logging

logger = logging.getLogger(__name__)


def setup_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Refresh the status of every validator stored in beacon_validators."
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        help="Max concurrent validator fetches (overrides RECHECK_CONCURRENCY)",
    )
    parser.add_argument(
        "--retry-limit",
        type=int,
        help="Attempts per validator fetch (overrides RETRY_LIMIT)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable DEBUG logging")
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
    parser.add_argument("--env-file", type=str, help="Load environment from this file")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = setup_cli_parser().parse_args(argv)

    if args.concurrency is not None and args.concurrency < 1:
        print("--concurrency must be at least 1")
        return 2
    if args.retry_limit is not None and args.retry_limit < 1:
        print("--retry-limit must be at least 1")
        return 2

    load_env(args.env_file)
    setup_logging(level="DEBUG" if args.verbose else args.log_level)

    cancel_token = CancellationToken()
    install_signal_handlers(cancel_token)

    try:
        settings = load_settings(
            {"recheck_concurrency": args.concurrency, "retry_limit": args.retry_limit}
        )
        log_settings(logger, "Recheck settings", settings.snapshot())
        result = asyncio.run(run_recheck(settings, cancel_token=cancel_token))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        print(f"Configuration error: {e}")
        return 2
    except StartupError as e:
        logger.error(f"Recheck aborted: {e}")
        print(f"FAILED: {e}")
        return 1
    except Exception as e:
        logger.error(f"Unexpected error during recheck: {e}", exc_info=True)
        print(f"UNEXPECTED ERROR: {e}")
        return 1

    if args.output_format == "json":
        print(json.dumps(result, indent=2, default=str))
        return 0

    summary = result.get("recheck")
    if summary is None:
        print("No validators in DB to re-check.")
        return 0

    print("\n" + "=" * 60)
    print("VALIDATOR RECHECK RESULTS")
    print("=" * 60)
    print(f"Checked:        {summary['checked']}/{summary['total']}")
    print(f"Refreshed:      {summary['refreshed']}")
    print(f"Not found:      {summary['missing']}")
    print(f"Failed:         {summary['failed']}")
    print(f"active_ongoing: {summary['active_ongoing']}")
    if summary["cancelled"]:
        print("\nRecheck was interrupted; rerun to refresh the rest.")
    print("=" * 60 + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
