"""Retry policy for external calls.

Side-effecting calls are never re-issued silently: the default policy makes a
single attempt, and a step opts into re-issue with its ``retries`` field.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Configurable retry policy with exponential backoff."""
    max_retries: int = 0
    initial_delay: float = 1.0
    backoff_factor: float = 2.0
    max_delay: float = 30.0

    @property
    def attempts(self) -> int:
        return self.max_retries + 1

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for a given retry attempt (0-indexed).

        Args:
            attempt: Current attempt number (0 = first retry).

        Returns:
            Delay in seconds before next retry.
        """
        delay = self.initial_delay * (self.backoff_factor ** attempt)
        return min(delay, self.max_delay)


def no_retry_policy() -> RetryPolicy:
    """Create a no-retry policy (fail immediately)."""
    return RetryPolicy(max_retries=0)


def step_retry_policy(retries: int, initial_delay: float = 1.0) -> RetryPolicy:
    """Create the policy for a step that set ``retries`` explicitly."""
    return RetryPolicy(max_retries=max(0, int(retries or 0)), initial_delay=initial_delay)


async def call_with_retry(
    call: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    retry_on: tuple[type[BaseException], ...],
    description: str = "call",
) -> T:
    """Await ``call()``, re-issuing it on ``retry_on`` errors per ``policy``.

    Raises:
        The last error once all attempts are exhausted.
    """
    for attempt in range(policy.attempts):
        try:
            return await call()
        except retry_on as e:
            if attempt >= policy.max_retries:
                raise
            delay = policy.get_delay(attempt)
            logger.info(
                "%s failed (%s); retry %d/%d in %.1fs",
                description, e, attempt + 1, policy.max_retries, delay,
            )
            await asyncio.sleep(delay)

    raise RuntimeError("Retry loop exited with no result")
