"""Batch ingestion of beacon blocks into the datastore.

A slot range is split into fixed-size batches that run one after another.
Inside a batch a ``WorkerPool`` fetches blocks concurrently. After a batch
drains, the ``last_processed_slot`` checkpoint moves to the end of that
batch, so an interrupted run resumes at ``checkpoint + 1``.

Slots that still fail after retries do not stop the run. They are
collected and fetched once more after the last batch; any that fail again
are reported in ``IngestionSummary.failed_slots``.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from src.shared.batch import (
    CancellationToken,
    CheckpointStore,
    ProgressTracker,
    RetryExhausted,
    RetryPolicy,
    WorkerPool,
    WorkResult,
    WorkStatus,
    fetch_with_retry,
    format_duration,
)

from ..beacon.client import BeaconClient
from ..beacon.parsing import extract_block_fields
from ..contracts import BlockRecord
from ..db.repository import BeaconRepository
from ..errors import PersistenceError

logger = logging.getLogger(__name__)


@dataclass
class IngestionSummary:
    """Totals for one ``ingest`` call."""

    start_slot: int
    end_slot: int
    total_slots: int
    total_batches: int
    batches_completed: int = 0
    processed: int = 0
    stored: int = 0
    skipped: int = 0
    failed: int = 0
    recovered: int = 0
    last_committed_slot: Optional[int] = None
    failed_slots: List[int] = field(default_factory=list)
    cancelled: bool = False
    duration_seconds: float = 0.0

    @property
    def complete(self) -> bool:
        """True when the checkpoint reached ``end_slot``."""
        return self.last_committed_slot is not None and self.last_committed_slot >= self.end_slot

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["complete"] = self.complete
        return data


class BatchIngestionDriver:
    """Drives the worker pool over consecutive slot batches.

    Args:
        client: Beacon node client used to fetch blocks
        repository: Persistence for block rows
        checkpoint: Durable ``last_processed_slot`` store
        batch_size: Slots per batch
        concurrency: Max concurrent fetches inside a batch
        retry_policy: Attempts and backoff for each slot fetch
        cancel_token: Stop flag checked before every batch and claim
    """

    def __init__(
        self,
        client: BeaconClient,
        repository: BeaconRepository,
        checkpoint: CheckpointStore,
        *,
        batch_size: int = 500,
        concurrency: int = 250,
        retry_policy: Optional[RetryPolicy] = None,
        cancel_token: Optional[CancellationToken] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.client = client
        self.repository = repository
        self.checkpoint = checkpoint
        self.batch_size = batch_size
        self.retry_policy = retry_policy or RetryPolicy()
        self.cancel_token = cancel_token or CancellationToken()
        self.pool: WorkerPool[int] = WorkerPool(concurrency, cancel_token=self.cancel_token, name="ingest")
        self._clock = clock

    def iter_batches(self, start_slot: int, end_slot: int) -> Iterator[Tuple[int, int]]:
        """Yield inclusive ``(batch_start, batch_end)`` pairs covering the range."""
        for batch_start in range(start_slot, end_slot + 1, self.batch_size):
            yield batch_start, min(batch_start + self.batch_size - 1, end_slot)

    async def ingest(self, start_slot: int, end_slot: int) -> IngestionSummary:
        """Fetch and store every slot in ``[start_slot, end_slot]``.

        Returns:
            IngestionSummary; ``complete`` is False only if the run was
            cancelled before the last batch committed
        """
        total_slots = max(end_slot - start_slot + 1, 0)
        total_batches = math.ceil(total_slots / self.batch_size)
        summary = IngestionSummary(
            start_slot=start_slot,
            end_slot=end_slot,
            total_slots=total_slots,
            total_batches=total_batches,
        )
        if total_slots == 0:
            logger.info("No slots to ingest in [%s..%s]", start_slot, end_slot)
            return summary

        logger.info("Starting ingestion of %d slots in %d batch(es).", total_slots, total_batches)
        run_start = self._clock()
        tracker = ProgressTracker(total_slots, stage="ingest", clock=self._clock)
        failed_slots: List[int] = []

        for batch_start, batch_end in self.iter_batches(start_slot, end_slot):
            if self.cancel_token.is_cancelled:
                logger.warning("Shutdown requested during ingestion. Stopping early...")
                summary.cancelled = True
                break

            batch_slots = range(batch_start, batch_end + 1)
            logger.info("Ingesting slots [%d..%d] (%d slots)...", batch_start, batch_end, len(batch_slots))
            batch_started = self._clock()

            report = await self.pool.run(batch_slots, self.process_slot)

            summary.processed += report.processed
            summary.stored += report.succeeded
            summary.skipped += report.skipped
            tracker.advance(
                report.processed,
                succeeded=report.succeeded,
                skipped=report.skipped,
                errors=report.failed,
            )
            failed_slots.extend(slot for slot, result in report.results if result.status is WorkStatus.FAILED)

            if report.cancelled:
                logger.warning(
                    "Batch [%d..%d] interrupted after %d/%d slots; checkpoint stays at %s",
                    batch_start,
                    batch_end,
                    report.processed,
                    report.total,
                    self.checkpoint.value,
                )
                summary.cancelled = True
                break

            await self._commit(batch_end, summary)
            summary.batches_completed += 1

            batch_elapsed = self._clock() - batch_started
            logger.info(
                "Batch done in %s. Batches done=%d/%d. Stored=%d Skipped=%d Failed=%d",
                format_duration(batch_elapsed),
                summary.batches_completed,
                total_batches,
                report.succeeded,
                report.skipped,
                report.failed,
            )
            tracker.log_progress(extra_stats={"Batches": f"{summary.batches_completed}/{total_batches}"})

        if failed_slots and not summary.cancelled:
            failed_slots = await self._retry_failed(sorted(failed_slots), summary)

        summary.failed_slots = sorted(failed_slots)
        summary.failed = len(summary.failed_slots)
        summary.duration_seconds = self._clock() - run_start
        tracker.log_summary()
        if summary.failed_slots:
            logger.error(
                "%d slot(s) could not be fetched and are not stored: %s",
                summary.failed,
                summary.failed_slots,
            )
        logger.info(
            "Finished ingestion up to slot=%s. Total time: %s",
            summary.last_committed_slot,
            format_duration(summary.duration_seconds),
        )
        return summary

    async def _retry_failed(self, slots: List[int], summary: IngestionSummary) -> List[int]:
        """Fetch *slots* once more and return the ones that still fail."""
        logger.info("Retrying %d failed slot(s)...", len(slots))
        report = await self.pool.run(slots, self.process_slot)

        summary.stored += report.succeeded
        summary.skipped += report.skipped
        summary.recovered = report.succeeded + report.skipped
        if report.cancelled:
            summary.cancelled = True

        # Unclaimed slots after a cancel count as still failed
        done = {slot for slot, result in report.results if result.status is not WorkStatus.FAILED}
        return [slot for slot in slots if slot not in done]

    async def _commit(self, slot: int, summary: IngestionSummary) -> None:
        if await self.checkpoint.commit(slot):
            summary.last_committed_slot = slot

    async def process_slot(self, slot: int) -> WorkResult:
        """Fetch one slot with retries and upsert its block row."""
        try:
            block = await fetch_with_retry(
                lambda: self.client.get_block(slot),
                self.retry_policy,
                description=f"Slot {slot}",
            )
        except RetryExhausted as exc:
            logger.error("Slot %s failed after retries. Err=%s", slot, exc.last_error)
            return WorkResult.failed(exc)
        except Exception as exc:  # noqa: BLE001
            logger.error("Slot %s fetch error: %s", slot, exc)
            return WorkResult.failed(exc)

        if block is None:
            logger.debug("No block at slot %s", slot)
            return WorkResult.skipped()

        proposer_index, graffiti = extract_block_fields(block)
        record = BlockRecord(slot=slot, proposer_index=proposer_index, graffiti=graffiti)
        try:
            await self.repository.upsert_block(record)
        except PersistenceError as exc:
            logger.error("%s", exc)
            return WorkResult.failed(exc)
        return WorkResult.success(record)
