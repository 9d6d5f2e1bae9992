"""Cooperative cancellation for long-running batch runs."""

from __future__ import annotations

import logging
import signal
import threading
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


class CancellationToken:
    """Set-once stop flag shared by a pool, its drivers and signal handlers.

    Workers only look at the token before claiming new work, so setting it
    never interrupts a request that is already in flight.

    Example:
        token = CancellationToken()
        install_signal_handlers(token)

        await pool.run(items, handler)
        if token.is_cancelled:
            logger.warning("Stopped early")
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Request a graceful stop. Later calls keep the first reason."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    def __repr__(self) -> str:
        state = f"cancelled ({self._reason})" if self.is_cancelled else "active"
        return f"CancellationToken<{state}>"


def install_signal_handlers(
    token: CancellationToken,
    signals: Iterable[int] = (signal.SIGINT, signal.SIGTERM),
) -> None:
    """Route process signals to *token* instead of raising KeyboardInterrupt."""

    def _handle(signum, frame):  # noqa: ARG001
        name = signal.Signals(signum).name
        logger.warning("Received %s. Graceful shutdown requested...", name)
        token.cancel(reason=name)

    for signum in signals:
        signal.signal(signum, _handle)
