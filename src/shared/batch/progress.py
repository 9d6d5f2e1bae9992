"""Progress tracking for batch processing pipelines."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

import psutil

logger = logging.getLogger(__name__)


def format_duration(seconds: float) -> str:
    """Format a duration as ``HH:MM:SS``; non-positive values give zeros."""
    if seconds <= 0:
        return "00:00:00"
    total_seconds = int(seconds)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class ProgressTracker:
    """Tracks processing progress and calculates elapsed time and ETA.

    Counts can be advanced one item at a time (recheck workers) or a batch
    at a time (slot ingestion). The ETA assumes the remaining units
    proceed at the average rate observed so far.

    Example:
        tracker = ProgressTracker(total=len(ids), stage="recheck", log_interval=25)

        for index in ids:
            tracker.increment(success=check(index))
            if tracker.should_log():
                tracker.log_progress()

        tracker.log_summary()
    """

    def __init__(
        self,
        total: int,
        stage: str,
        *,
        log_interval: int = 25,
        log_time_interval: int = 30,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize progress tracker.

        Args:
            total: Total number of units to process
            stage: Stage name used in log lines
            log_interval: Number of units between logs
            log_time_interval: Seconds between time-based logs
            clock: Monotonic time source, injectable for tests
        """
        self.total = total
        self.stage = stage
        self.log_interval = log_interval
        self.log_time_interval = log_time_interval
        self._clock = clock

        self.start_time = clock()
        self.processed_count = 0
        self.success_count = 0
        self.skipped_count = 0
        self.error_count = 0
        self.lock = threading.Lock()
        self.last_log_time = self.start_time
        self.last_log_count = 0

    def increment(self, success: bool = True, *, skipped: bool = False) -> None:
        """Count one processed unit."""
        self.advance(
            1,
            succeeded=1 if success and not skipped else 0,
            skipped=1 if skipped else 0,
            errors=0 if success or skipped else 1,
        )

    def advance(self, processed: int, *, succeeded: int = 0, skipped: int = 0, errors: int = 0) -> None:
        """Count a block of processed units, e.g. one finished batch."""
        with self.lock:
            self.processed_count += processed
            self.success_count += succeeded
            self.skipped_count += skipped
            self.error_count += errors

    def should_log(self) -> bool:
        """Check if progress should be logged.

        Returns:
            True on every ``log_interval`` units, when the time interval
            elapsed, or once everything has been processed
        """
        with self.lock:
            if self.processed_count == self.last_log_count:
                return False
            if self.processed_count >= self.total:
                return True
            count_trigger = self.processed_count - self.last_log_count >= self.log_interval
            time_trigger = self._clock() - self.last_log_time >= self.log_time_interval
            return count_trigger or time_trigger

    def elapsed_seconds(self) -> float:
        return self._clock() - self.start_time

    def eta_seconds(self) -> float:
        """Seconds left at the average rate so far; 0 before any progress."""
        with self.lock:
            processed = self.processed_count
        if processed <= 0:
            return 0.0
        remaining = max(self.total - processed, 0)
        return self.elapsed_seconds() / processed * remaining

    def log_progress(self, extra_stats: Optional[Dict[str, Any]] = None) -> None:
        """Log current progress with all metrics.

        Args:
            extra_stats: Optional additional stats to include in log
        """
        elapsed = self.elapsed_seconds()
        eta = self.eta_seconds()
        with self.lock:
            percent = self.processed_count / self.total * 100 if self.total > 0 else 0
            parts = [
                f"{self.stage} progress: {self.processed_count:,}/{self.total:,} ({percent:.1f}%)",
                f"Elapsed: {format_duration(elapsed)}",
                f"ETA: {format_duration(eta)}",
                f"Errors: {self.error_count}",
            ]

            memory = psutil.virtual_memory()
            parts.append(
                f"Memory: {memory.percent:.0f}% ({memory.used / (1024**3):.1f}/{memory.total / (1024**3):.1f}GB)"
            )

            if extra_stats:
                for key, value in extra_stats.items():
                    if isinstance(value, float):
                        parts.append(f"{key}: {value:.1f}")
                    else:
                        parts.append(f"{key}: {value}")

            logger.info(" | ".join(parts))

            self.last_log_time = self._clock()
            self.last_log_count = self.processed_count

    def log_summary(self) -> None:
        """Log final summary."""
        elapsed = self.elapsed_seconds()
        rate = self.processed_count / elapsed if elapsed > 0 else 0

        summary_parts = [
            f"Total processed: {self.processed_count:,}/{self.total:,}",
            f"Successful: {self.success_count:,}",
            f"Skipped: {self.skipped_count:,}",
            f"Errors: {self.error_count:,}",
            f"Time: {format_duration(elapsed)}",
            f"Avg rate: {rate:.1f}/s",
            f"Stage: {self.stage}",
        ]

        logger.info("Batch Processing Complete:\n  " + "\n  ".join(summary_parts))

    def get_stats(self) -> Dict[str, Any]:
        """Get current progress statistics.

        Returns:
            Dict with progress metrics
        """
        elapsed = self.elapsed_seconds()
        eta = self.eta_seconds()
        with self.lock:
            return {
                "processed": self.processed_count,
                "successful": self.success_count,
                "skipped": self.skipped_count,
                "errors": self.error_count,
                "total": self.total,
                "percent": (
                    self.processed_count / self.total * 100
                    if self.total > 0
                    else 0
                ),
                "elapsed_seconds": elapsed,
                "eta_seconds": eta,
                "stage": self.stage,
            }
