"""Concurrent refresh of validator status rows."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional

from src.shared.batch import (
    CancellationToken,
    ProgressTracker,
    RetryExhausted,
    RetryPolicy,
    WorkerPool,
    WorkResult,
    WorkStatus,
    fetch_with_retry,
)

from ..beacon.client import BeaconClient
from ..contracts import ValidatorRecord
from ..db.repository import BeaconRepository
from ..errors import PersistenceError

logger = logging.getLogger(__name__)


@dataclass
class RecheckSummary:
    total: int
    checked: int = 0
    refreshed: int = 0
    missing: int = 0
    failed: int = 0
    cancelled: bool = False
    duration_seconds: float = 0.0
    statuses: Dict[int, str] = field(default_factory=dict)
    active_ongoing: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "checked": self.checked,
            "refreshed": self.refreshed,
            "missing": self.missing,
            "failed": self.failed,
            "active_ongoing": self.active_ongoing,
            "cancelled": self.cancelled,
            "duration_seconds": self.duration_seconds,
        }


class ValidatorRecheckDriver:
    """Re-fetches validators and upserts their current status.

    There is no batching or checkpoint: every row is overwritten
    unconditionally, so a rerun from scratch is always safe.
    """

    def __init__(
        self,
        client: BeaconClient,
        repository: BeaconRepository,
        *,
        concurrency: int = 350,
        retry_policy: Optional[RetryPolicy] = None,
        cancel_token: Optional[CancellationToken] = None,
        progress_log_interval: int = 25,
        stage: str = "Validator check",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.repository = repository
        self.retry_policy = retry_policy or RetryPolicy()
        self.cancel_token = cancel_token or CancellationToken()
        self.pool: WorkerPool[int] = WorkerPool(concurrency, cancel_token=self.cancel_token, name="recheck")
        self.progress_log_interval = progress_log_interval
        self.stage = stage
        self._clock = clock

    async def recheck_all(self, validator_ids: Iterable[int]) -> RecheckSummary:
        """Refresh every validator in *validator_ids* (duplicates ignored)."""
        ids = sorted(set(validator_ids))
        summary = RecheckSummary(total=len(ids))
        if not ids:
            return summary

        started = self._clock()
        tracker = ProgressTracker(
            len(ids),
            stage=self.stage,
            log_interval=self.progress_log_interval,
            clock=self._clock,
        )

        def on_result(validator_index: int, result: WorkResult) -> None:
            tracker.increment(success=result.ok, skipped=result.status is WorkStatus.SKIPPED)
            if tracker.should_log():
                tracker.log_progress()

        report = await self.pool.run(ids, self.check_validator, on_result=on_result)

        summary.checked = report.processed
        summary.refreshed = report.succeeded
        summary.missing = report.skipped
        summary.failed = report.failed
        summary.cancelled = report.cancelled
        summary.duration_seconds = self._clock() - started
        for validator_index, result in report.results:
            if result.ok:
                summary.statuses[validator_index] = result.payload.status
                if result.payload.is_active:
                    summary.active_ongoing += 1

        tracker.log_summary()
        return summary

    async def check_validator(self, validator_index: int) -> WorkResult:
        """Fetch one validator with retries and upsert its status row."""
        try:
            record: Optional[ValidatorRecord] = await fetch_with_retry(
                lambda: self.client.get_validator(validator_index),
                self.retry_policy,
                description=f"Validator {validator_index}",
            )
        except RetryExhausted as exc:
            logger.error("Validator %s check failed: %s", validator_index, exc.last_error)
            return WorkResult.failed(exc)
        except Exception as exc:  # noqa: BLE001
            logger.error("Validator %s check failed: %s", validator_index, exc)
            return WorkResult.failed(exc)

        if record is None:
            logger.debug("Validator %s not known to the beacon node", validator_index)
            return WorkResult.skipped()

        try:
            await self.repository.upsert_validator(record)
        except PersistenceError as exc:
            logger.error("%s", exc)
            return WorkResult.failed(exc)
        return WorkResult.success(record)
