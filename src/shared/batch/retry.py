"""Retry wrapper for network fetches with linear backoff."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class TransientFetchError(Exception):
    """A fetch failed in a way that may succeed on a later attempt."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RetryExhausted(Exception):
    """Raised once every allowed attempt has failed."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"gave up after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to attempt an operation and how long to wait between.

    Attributes:
        max_attempts: Total attempts including the first one
        base_delay: Seconds multiplied by the attempt number for backoff
        retry_on: Exception types treated as transient
        sleep: Awaitable sleep, injectable so tests run without delays
    """

    max_attempts: int = 3
    base_delay: float = 0.5
    retry_on: Tuple[Type[BaseException], ...] = (TransientFetchError, httpx.TransportError)
    sleep: Sleep = field(default=asyncio.sleep, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be positive, got {self.max_attempts}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay cannot be negative, got {self.base_delay}")

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt following *attempt* (1-based)."""
        return self.base_delay * attempt


async def fetch_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    description: str = "fetch",
) -> T:
    """Await *operation* until it succeeds or the policy runs out of attempts.

    A return value of ``None`` (the "not found" outcome of the beacon
    fetchers) is a normal result and is returned after a single attempt.
    Exceptions outside ``policy.retry_on`` propagate immediately.

    Args:
        operation: Zero-argument coroutine function performing one attempt
        policy: Attempt limit, backoff and sleep implementation
        description: Label used in log messages, e.g. ``"slot 1234"``

    Returns:
        Result of the first successful attempt

    Raises:
        RetryExhausted: If every attempt raised a retryable error

    Example:
        block = await fetch_with_retry(
            lambda: client.get_block(slot),
            RetryPolicy(max_attempts=3),
            description=f"slot {slot}",
        )
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except policy.retry_on as exc:
            logger.warning("%s fetch fail (#%d): %s", description, attempt, exc)
            if attempt >= policy.max_attempts:
                logger.error("%s - out of retries", description)
                raise RetryExhausted(attempt, exc) from exc
            await policy.sleep(policy.delay_for(attempt))
            attempt += 1
