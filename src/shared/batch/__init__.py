"""Shared batch processing infrastructure.

Provides generic utilities for concurrent batch pipelines:
- WorkerPool: Bounded-concurrency asyncio worker pool over an ordered item list
- WorkResult / PoolReport: Per-item outcomes and run totals
- CancellationToken: Cooperative stop flag, wired to SIGINT/SIGTERM
- RetryPolicy / fetch_with_retry: Linear-backoff retries for transient failures
- ProgressTracker: Elapsed/ETA progress logging
- CheckpointStore: Durable high-water mark for resumable runs

Usage:
    from src.shared.batch import WorkerPool, WorkResult, CancellationToken
    from src.shared.batch import RetryPolicy, fetch_with_retry, TransientFetchError
    from src.shared.batch import ProgressTracker, CheckpointStore
"""

from .cancellation import CancellationToken, install_signal_handlers
from .checkpoint import CheckpointStore
from .progress import ProgressTracker, format_duration
from .retry import RetryExhausted, RetryPolicy, TransientFetchError, fetch_with_retry
from .worker_pool import PoolReport, WorkerPool, WorkResult, WorkStatus

__all__ = [
    "CancellationToken",
    "install_signal_handlers",
    "CheckpointStore",
    "ProgressTracker",
    "format_duration",
    "RetryExhausted",
    "RetryPolicy",
    "TransientFetchError",
    "fetch_with_retry",
    "PoolReport",
    "WorkerPool",
    "WorkResult",
    "WorkStatus",
]
