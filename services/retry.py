"""Bounded retry with exponential backoff and jitter for async actions."""
from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from core.log import get_logger
from core.settings import RETRY


T = TypeVar("T")

logger = get_logger("retry")


@dataclass(frozen=True)
class RetryPolicy:
    """``max_retries`` counts retries after the first attempt."""

    max_retries: int = RETRY.max_retries
    initial_delay: float = RETRY.initial_delay_sec
    max_delay: float = RETRY.max_delay_sec
    jitter: float = RETRY.jitter_sec

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError("Delays must be >= 0")

    def delay_for(self, attempt_index: int, jitter_value: float = 0.0) -> float:
        return min(self.initial_delay * (2 ** attempt_index) + jitter_value, self.max_delay)


DEFAULT_POLICY = RetryPolicy()


async def with_retry(
    action: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    random_fn: Callable[[float, float], float] = random.uniform,
    retry_if: Optional[Callable[[BaseException], bool]] = None,
    label: str = "action",
) -> T:
    """Run ``action`` until it succeeds or the retry budget is spent.

    Every ``Exception`` is retried unless ``retry_if`` says otherwise. The
    last failure is re-raised unchanged. Cancellation is never retried.
    """

    policy = policy or DEFAULT_POLICY
    attempt = 0
    while True:
        try:
            return await action()
        except Exception as exc:
            if attempt >= policy.max_retries:
                logger.warning("%s failed after %d attempts: %s", label, attempt + 1, exc)
                raise
            if retry_if is not None and not retry_if(exc):
                logger.warning("%s failed with a non-retryable error: %s", label, exc)
                raise
            delay = policy.delay_for(attempt, random_fn(0.0, policy.jitter))
            logger.info(
                "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                label,
                attempt + 1,
                policy.max_retries + 1,
                delay,
                exc,
            )
            await sleep(delay)
            attempt += 1


__all__ = ["DEFAULT_POLICY", "RetryPolicy", "with_retry"]
