"""Bounded-concurrency worker pool for asyncio batch processing."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

from .cancellation import CancellationToken

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WorkStatus(str, Enum):
    """Outcome of processing one work item."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class WorkResult:
    """Result returned by a pool handler for a single item."""

    status: WorkStatus
    payload: Any = None
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, payload: Any = None) -> "WorkResult":
        return cls(WorkStatus.SUCCESS, payload=payload)

    @classmethod
    def skipped(cls) -> "WorkResult":
        return cls(WorkStatus.SKIPPED)

    @classmethod
    def failed(cls, error: BaseException) -> "WorkResult":
        return cls(WorkStatus.FAILED, error=error)

    @property
    def ok(self) -> bool:
        return self.status is WorkStatus.SUCCESS


@dataclass
class PoolReport(Generic[T]):
    """Everything a pool run produced, in completion order."""

    total: int
    results: List[Tuple[T, WorkResult]] = field(default_factory=list)
    cancelled: bool = False

    @property
    def processed(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return self._count(WorkStatus.SUCCESS)

    @property
    def skipped(self) -> int:
        return self._count(WorkStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(WorkStatus.FAILED)

    @property
    def complete(self) -> bool:
        """True when every item was processed."""
        return self.processed == self.total

    def _count(self, status: WorkStatus) -> int:
        return sum(1 for _, result in self.results if result.status is status)


Handler = Callable[[T], Awaitable[WorkResult]]
ResultCallback = Callable[[T, WorkResult], None]


class WorkerPool(Generic[T]):
    """Runs a fixed number of asyncio workers over an ordered item list.

    Each worker loops: check the cancellation token, claim the next item
    from a shared cursor, await the handler, record the result. Items are
    claimed strictly in input order; completion order is whatever the
    handlers produce.

    Handlers are expected to return a ``WorkResult``. An exception escaping
    a handler is recorded as ``WorkResult.failed`` and the worker moves on
    to its next item.

    Example:
        pool = WorkerPool(concurrency=250, cancel_token=token, name="slots")
        report = await pool.run(range(start, end + 1), process_slot)
        logger.info("%d/%d processed", report.processed, report.total)
    """

    def __init__(
        self,
        concurrency: int,
        *,
        cancel_token: Optional[CancellationToken] = None,
        name: str = "pool",
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be positive, got {concurrency}")
        self.concurrency = concurrency
        self.cancel_token = cancel_token or CancellationToken()
        self.name = name

    async def run(
        self,
        items: Sequence[T],
        handler: Handler,
        *,
        on_result: Optional[ResultCallback] = None,
    ) -> PoolReport[T]:
        """Process *items* with at most ``concurrency`` handlers in flight.

        Args:
            items: Ordered work items; each is claimed exactly once
            handler: Coroutine function mapping an item to a WorkResult
            on_result: Optional callback invoked after every completed item

        Returns:
            PoolReport with one entry per item whose processing started
        """
        items = list(items)
        report: PoolReport[T] = PoolReport(total=len(items))
        if not items:
            return report

        cursor = 0

        def claim() -> Optional[T]:
            # No await between the bounds check and the increment, so the
            # claim is atomic with respect to the other workers.
            nonlocal cursor
            if self.cancel_token.is_cancelled or cursor >= len(items):
                return None
            item = items[cursor]
            cursor += 1
            return item

        async def worker(worker_id: int) -> None:
            while True:
                claimed = claim()
                if claimed is None:
                    return
                result = await self._invoke(handler, claimed)
                report.results.append((claimed, result))
                if on_result is not None:
                    try:
                        on_result(claimed, result)
                    except Exception:  # noqa: BLE001
                        logger.exception("%s: result callback failed for %r", self.name, claimed)
                logger.debug("%s worker %d finished %r: %s", self.name, worker_id, claimed, result.status.value)

        workers = min(self.concurrency, len(items))
        logger.debug("%s: starting %d worker(s) for %d item(s)", self.name, workers, len(items))
        await asyncio.gather(*(worker(i) for i in range(workers)))

        report.cancelled = self.cancel_token.is_cancelled and not report.complete
        if report.cancelled:
            logger.warning(
                "%s: cancelled after %d/%d item(s)",
                self.name,
                report.processed,
                report.total,
            )
        return report

    async def _invoke(self, handler: Handler, item: T) -> WorkResult:
        try:
            result = await handler(item)
        except Exception as exc:  # noqa: BLE001
            logger.error("%s: unhandled error for %r: %s", self.name, item, exc)
            return WorkResult.failed(exc)
        if not isinstance(result, WorkResult):
            return WorkResult.success(result)
        return result
