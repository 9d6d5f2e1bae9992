"""End-to-end orchestration: resume ingestion to head, then refresh stats."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from src.shared.batch import CancellationToken, CheckpointStore, RetryPolicy

from ..beacon.client import BeaconClient
from ..config import IngestionSettings
from ..db.repository import (
    LAST_PROCESSED_SLOT,
    META_TABLE,
    BeaconRepository,
    create_supabase_repository,
)
from .ingestion import BatchIngestionDriver
from .recheck import ValidatorRecheckDriver
from .stats import GraffitiStatsAggregator

logger = logging.getLogger(__name__)


def build_retry_policy(settings: IngestionSettings) -> RetryPolicy:
    return RetryPolicy(max_attempts=settings.retry_limit, base_delay=settings.retry_base_delay)


class IngestionRun:
    """One scheduled run: checkpoint -> head slot -> ingest -> stats.

    Example:
        run = IngestionRun(settings, beacon, repository, cancel_token=token)
        result = await run.run()
    """

    def __init__(
        self,
        settings: IngestionSettings,
        client: BeaconClient,
        repository: BeaconRepository,
        *,
        cancel_token: Optional[CancellationToken] = None,
        retry_policy: Optional[RetryPolicy] = None,
        skip_stats: bool = False,
    ) -> None:
        self.settings = settings
        self.client = client
        self.repository = repository
        self.cancel_token = cancel_token or CancellationToken()
        self.skip_stats = skip_stats
        retry_policy = retry_policy or build_retry_policy(settings)

        self.checkpoint = CheckpointStore(repository.datastore, LAST_PROCESSED_SLOT, table=META_TABLE)
        self.ingestion = BatchIngestionDriver(
            client,
            repository,
            self.checkpoint,
            batch_size=settings.batch_size,
            concurrency=settings.concurrency_limit,
            retry_policy=retry_policy,
            cancel_token=self.cancel_token,
        )
        self.stats = GraffitiStatsAggregator(
            repository,
            ValidatorRecheckDriver(
                client,
                repository,
                concurrency=settings.stats_validator_concurrency,
                retry_policy=retry_policy,
                cancel_token=self.cancel_token,
                progress_log_interval=settings.progress_log_interval,
                stage="Validator check",
            ),
            graffiti_search=settings.graffiti_search,
        )

    async def run(self) -> Dict[str, Any]:
        """Execute the run and return a result dictionary.

        Raises:
            StartupError: If the datastore is unreachable
            HeadSlotError: If the head slot cannot be determined
        """
        started = time.monotonic()
        await self.repository.ping()

        last_processed = await self.checkpoint.load()
        start_slot = last_processed + 1 if last_processed is not None else 0
        head_slot = await self.client.get_head_slot()

        result: Dict[str, Any] = {
            "success": True,
            "start_slot": start_slot,
            "head_slot": head_slot,
            "ingestion": None,
            "stats": None,
            "cancelled": False,
        }

        if start_slot > head_slot:
            logger.info(
                "last_processed_slot=%s >= headSlot=%s. No new slots to process.",
                last_processed,
                head_slot,
            )
        else:
            logger.info("Will ingest blocks from slot %s to slot %s...", start_slot, head_slot)
            summary = await self.ingestion.ingest(start_slot, head_slot)
            result["ingestion"] = summary.to_dict()

        if self.cancel_token.is_cancelled:
            result["cancelled"] = True
            logger.warning("Shutdown requested; skipping final stats step.")
        elif self.skip_stats:
            logger.info("Final stats step disabled for this run.")
        else:
            snapshot = await self.stats.compute_stats(head_slot)
            if snapshot is not None:
                result["stats"] = snapshot.to_row()
            result["cancelled"] = self.cancel_token.is_cancelled

        result["duration_seconds"] = time.monotonic() - started
        return result


def create_beacon_client(settings: IngestionSettings) -> BeaconClient:
    return BeaconClient(
        settings.endpoint,
        head_endpoint=settings.head_endpoint,
        api_key=settings.api_key,
        timeout=settings.http_timeout,
        max_connections=settings.max_concurrency,
    )


async def run_ingestion(
    settings: IngestionSettings,
    *,
    cancel_token: Optional[CancellationToken] = None,
    skip_stats: bool = False,
    repository: Optional[BeaconRepository] = None,
) -> Dict[str, Any]:
    """Wire production dependencies and execute one ``IngestionRun``."""
    repository = repository or create_supabase_repository()
    async with create_beacon_client(settings) as client:
        run = IngestionRun(
            settings,
            client,
            repository,
            cancel_token=cancel_token,
            skip_stats=skip_stats,
        )
        return await run.run()


async def run_recheck(
    settings: IngestionSettings,
    *,
    cancel_token: Optional[CancellationToken] = None,
    repository: Optional[BeaconRepository] = None,
) -> Dict[str, Any]:
    """Refresh the status of every validator already stored."""
    repository = repository or create_supabase_repository()
    await repository.ping()

    validator_ids = await repository.all_validator_ids()
    if not validator_ids:
        logger.info("No validators in DB to re-check. Exiting.")
        return {"success": True, "recheck": None}
    logger.info("Found %d validator doc(s). Will re-check all.", len(validator_ids))

    async with create_beacon_client(settings) as client:
        driver = ValidatorRecheckDriver(
            client,
            repository,
            concurrency=settings.recheck_concurrency,
            retry_policy=build_retry_policy(settings),
            cancel_token=cancel_token,
            progress_log_interval=settings.progress_log_interval,
            stage="Recheck",
        )
        summary = await driver.recheck_all(validator_ids)

    if summary.cancelled:
        logger.warning("Recheck interrupted after %d/%d validators", summary.checked, summary.total)
    else:
        logger.info("All validators recheck complete!")
    return {"success": True, "recheck": summary.to_dict()}
