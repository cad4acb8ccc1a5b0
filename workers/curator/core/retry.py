from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from curator.engine.errors import TransientProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Backoff = Callable[[int], float]
Sleep = Callable[[float], Awaitable[None]]


def linear_backoff(step_seconds: float) -> Backoff:
    """Delay grows by ``step_seconds`` per failed attempt (1 -> step, 2 -> 2*step, ...)."""

    def _delay(attempt: int) -> float:
        return max(0.0, attempt * step_seconds)

    return _delay


def no_backoff(_: int) -> float:
    return 0.0


@dataclass(slots=True)
class RetryPolicy:
    max_attempts: int
    backoff: Backoff = no_backoff
    retry_on: tuple[type[BaseException], ...] = (TransientProviderError,)
    sleep: Sleep = field(default=asyncio.sleep)

    def is_retryable(self, exc: BaseException) -> bool:
        return isinstance(exc, self.retry_on)

    async def run(self, operation: Callable[[], Awaitable[T]], *, label: str = "operation") -> T:
        attempts = max(1, self.max_attempts)
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as exc:
                if not self.is_retryable(exc) or attempt >= attempts:
                    raise
                delay = self.backoff(attempt)
                logger.warning(
                    "%s failed (attempt %s/%s): %s; retry in %.1fs",
                    label,
                    attempt,
                    attempts,
                    exc,
                    delay,
                )
                await self.sleep(delay)


def single_attempt() -> RetryPolicy:
    return RetryPolicy(max_attempts=1)
