"""Retry policy shared by the content generator and the publisher."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any, Optional, TypeVar

from content_jobs.errors import ExternalServiceError

T = TypeVar("T")

DEFAULT_BACKOFF_POLICY = {"type": "exponential", "base_seconds": 1, "max_seconds": 10}


class RetryPolicy:
    """
    Bounded retry with backoff for calls to external services.

    Only ExternalServiceError instances flagged as retryable are retried; any
    other exception propagates immediately.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_policy: Optional[dict[str, Any]] = None,
        jitter: float = 0.1,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.backoff_policy = backoff_policy or dict(DEFAULT_BACKOFF_POLICY)
        self.jitter = jitter
        self.sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given failed attempt (1-indexed), with jitter."""
        return calculate_backoff_with_jitter(self.backoff_policy, attempt, self.jitter)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str,
        logger: Optional[logging.Logger] = None,
    ) -> T:
        """
        Await ``operation`` until it succeeds or the policy gives up.

        Args:
            operation: Zero-argument coroutine function to call
            description: Human-readable name used in log lines
            logger: Logger instance

        Returns:
            The operation's result

        Raises:
            ExternalServiceError: The last error once attempts are exhausted,
                or the first non-retryable one
        """
        logger = logger or logging.getLogger(__name__)

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except ExternalServiceError as e:
                if not e.retryable or attempt >= self.max_attempts:
                    logger.error(
                        f"{description} failed after {attempt} attempt(s): {e}"
                    )
                    raise

                delay = self.delay_for(attempt)
                logger.warning(
                    f"{description} failed (attempt {attempt}/{self.max_attempts}): "
                    f"{e}; retrying in {delay:.2f}s"
                )
                await self.sleep(delay)

        # Unreachable: the loop either returns or raises
        raise RuntimeError(f"{description} exhausted retry loop")


def calculate_backoff_with_jitter(
    backoff_policy: dict[str, Any], attempt: int, jitter: float = 0.1
) -> float:
    """
    Calculate backoff delay with jitter based on policy and attempt number.

    Args:
        backoff_policy: Backoff policy configuration
        attempt: Current attempt number (1-indexed)
        jitter: Fraction of the delay to randomize by, in both directions

    Returns:
        Backoff delay in seconds with jitter applied
    """
    base_delay = calculate_backoff(backoff_policy, attempt)

    jitter_factor = 1.0 + random.uniform(-jitter, jitter)
    return max(0.0, base_delay * jitter_factor)


def calculate_backoff(backoff_policy: dict[str, Any], attempt: int) -> float:
    """
    Calculate backoff delay based on policy and attempt number.

    Args:
        backoff_policy: Backoff policy configuration
        attempt: Current attempt number (1-indexed)

    Returns:
        Backoff delay in seconds
    """
    policy_type = backoff_policy.get("type", "exponential")
    base_seconds = backoff_policy.get("base_seconds", 1)
    max_seconds = backoff_policy.get("max_seconds", 3600)

    if policy_type == "linear":
        delay = base_seconds * attempt
    elif policy_type == "constant":
        delay = base_seconds
    else:
        # Exponential, also the fallback for unknown types: base * 2^(attempt-1)
        delay = base_seconds * (2 ** (attempt - 1))

    return min(delay, max_seconds)
