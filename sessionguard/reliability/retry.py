"""
Backoff Policy: Exponential Backoff with Jitter

Implements the wait strategy used while a session lock is contended:
- Exponential backoff: base × 2^n, capped
- Full jitter: random(0, backoff) to prevent thundering herd
- Deadline: waiting stops once the overall timeout has elapsed

The deadline never truncates the protocol into a busy loop: every
failed attempt sleeps before the next one.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional

from sessionguard.core.config import LockConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackoffPolicy:
    """Backoff configuration."""

    base_delay_ms: int = 10
    max_delay_ms: int = 500
    exponential_base: float = 2.0
    jitter: bool = True  # Full jitter

    @classmethod
    def from_lock_config(cls, config: LockConfig) -> BackoffPolicy:
        return cls(
            base_delay_ms=config.backoff_base_ms,
            max_delay_ms=config.backoff_max_ms,
            exponential_base=config.exponential_base,
            jitter=config.jitter,
        )


def calculate_backoff(
    attempt: int,
    base_delay_ms: int,
    max_delay_ms: int,
    exponential_base: float,
    jitter: bool,
) -> float:
    """
    Calculate backoff delay in milliseconds with optional jitter.

    Full jitter: random(0, min(cap, base * exponential_base^attempt))

    The exponent stops growing once the cap is reached, so a waiter may
    retry for as long as its deadline allows.
    """
    if base_delay_ms <= 0 or base_delay_ms >= max_delay_ms:
        attempt = 0
    elif exponential_base > 1.0:
        attempt = min(attempt, math.ceil(math.log(max_delay_ms / base_delay_ms, exponential_base)))

    delay = min(max_delay_ms, base_delay_ms * (exponential_base ** attempt))

    if jitter:
        delay = random.uniform(0, delay)

    return delay


class BackoffContext:
    """
    Deadline-bounded backoff for a single retry loop.

    Usage:
        backoff = BackoffContext(policy, timeout_s=30.0)
        while not await try_once():
            if backoff.expired:
                raise_timeout(backoff.attempts, backoff.elapsed)
            await backoff.wait()
    """

    __slots__ = ("_policy", "_attempt", "_started", "_deadline", "_clock", "_sleep")

    def __init__(
        self,
        policy: Optional[BackoffPolicy] = None,
        timeout_s: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] = asyncio.sleep,
    ) -> None:
        self._policy = policy or BackoffPolicy()
        self._attempt = 0
        self._clock = clock
        self._sleep = sleep
        self._started = clock()
        self._deadline = self._started + timeout_s

    @property
    def attempts(self) -> int:
        """Number of waits performed so far."""
        return self._attempt

    @property
    def elapsed(self) -> float:
        """Seconds since the loop started."""
        return self._clock() - self._started

    @property
    def expired(self) -> bool:
        return self._clock() >= self._deadline

    async def wait(self) -> float:
        """
        Sleep for the next backoff delay, never past the deadline.

        Returns the delay slept, in milliseconds.
        """
        delay_ms = calculate_backoff(
            attempt=self._attempt,
            base_delay_ms=self._policy.base_delay_ms,
            max_delay_ms=self._policy.max_delay_ms,
            exponential_base=self._policy.exponential_base,
            jitter=self._policy.jitter,
        )
        remaining_ms = max(0.0, (self._deadline - self._clock()) * 1000)
        delay_ms = min(delay_ms, remaining_ms)
        self._attempt += 1

        logger.debug("Backing off %.1fms (attempt %d)", delay_ms, self._attempt)
        await self._sleep(delay_ms / 1000)
        return delay_ms
