# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgs3backup Retry - Bounded exponential backoff for asynchronous polling.

The backup-control API only *requests* a transition; the caller has to poll
until the instance confirms it. This module provides the policy and the loop
used for both the start and the stop confirmation.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator, TypeVar

import structlog

from pgs3backup.exceptions import ConfigurationError

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff schedule.

    steps is the maximum number of attempts; the loop sleeps steps - 1
    times. Each delay is multiplied by factor, jittered by +/- jitter and
    optionally capped at max_delay.
    """

    steps: int = 10
    duration: float = 1.0
    factor: float = 5.0
    jitter: float = 0.1
    max_delay: float | None = None

    def __post_init__(self) -> None:
        errors = []
        if self.steps < 1:
            errors.append(f"steps must be >= 1, got {self.steps}")
        if self.duration < 0:
            errors.append(f"duration must be >= 0, got {self.duration}")
        if self.factor < 1:
            errors.append(f"factor must be >= 1, got {self.factor}")
        if not 0 <= self.jitter < 1:
            errors.append(f"jitter must be in [0, 1), got {self.jitter}")
        if self.max_delay is not None and self.max_delay < 0:
            errors.append(f"max_delay must be >= 0, got {self.max_delay}")

        if errors:
            raise ConfigurationError(
                "Retry policy validation failed",
                details={"errors": errors},
            )

    def delays(self) -> Iterator[float]:
        """Yield the un-jittered delays between consecutive attempts."""
        delay = self.duration
        for _ in range(self.steps - 1):
            if self.max_delay is not None:
                delay = min(delay, self.max_delay)
            yield delay
            delay *= self.factor

    def jittered(self, delay: float, rng: Callable[[], float] = random.random) -> float:
        """Apply symmetric jitter to a delay."""
        if not self.jitter:
            return delay
        return delay * (1 + self.jitter * (2 * rng() - 1))

    def total_wait(self) -> float:
        """Un-jittered wait before the last attempt is made."""
        return sum(self.delays())


# Backoff used while waiting for the instance to enter or leave backup mode
BACKUP_MODE_RETRY = RetryPolicy(steps=10, duration=1.0, factor=5.0, jitter=0.1)


async def _checkpoint() -> None:
    # Yield to the loop so a pending cancellation is delivered here.
    await asyncio.sleep(0)


async def retry_on_error(
    policy: RetryPolicy,
    retriable: Callable[[BaseException], bool],
    func: Callable[[], Awaitable[T]],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: Callable[[], float] = random.random,
) -> T:
    """
    Call func until it succeeds, retrying only errors accepted by retriable.

    Non-retriable errors propagate immediately. When every attempt fails with
    a retriable error, the last one is re-raised after policy.steps attempts.
    asyncio.CancelledError is never retried.

    Args:
        policy: Backoff schedule
        retriable: Predicate classifying an exception as retryable
        func: Zero-argument coroutine function performing one attempt
        sleep: Sleep coroutine (injectable for tests)
        rng: Random source in [0, 1) used for jitter

    Returns:
        The value returned by the first successful attempt
    """
    delays = policy.delays()
    attempt = 0

    while True:
        attempt += 1
        await _checkpoint()
        try:
            return await func()
        except Exception as e:
            if not retriable(e):
                raise

            delay = next(delays, None)
            if delay is None:
                logger.warning(
                    "retry_exhausted",
                    attempts=attempt,
                    error=str(e),
                )
                raise

            wait = policy.jittered(delay, rng)
            logger.debug(
                "retry_scheduled",
                attempt=attempt,
                delay=round(wait, 3),
                error=str(e),
            )

        await _checkpoint()
        await sleep(wait)
