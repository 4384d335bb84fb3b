"""Explicit retry policies for outbound calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from homework_grader.errors import ErrorCode, GradingError

T = TypeVar("T")
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to attempt a call and which failures earn another attempt."""

    max_attempts: int = 1
    retry_on: frozenset[ErrorCode] = field(default_factory=frozenset)
    backoff_seconds: tuple[float, ...] = ()

    def should_retry(self, exc: BaseException, attempt: int) -> bool:
        if attempt >= self.max_attempts:
            return False
        return isinstance(exc, GradingError) and exc.code in self.retry_on

    def delay_for(self, attempt: int) -> float:
        if not self.backoff_seconds:
            return 0.0
        return self.backoff_seconds[min(attempt - 1, len(self.backoff_seconds) - 1)]


# One retry, and only when the OCR request timed out.
OCR_RETRY_POLICY = RetryPolicy(max_attempts=2, retry_on=frozenset({ErrorCode.OCR_TIMEOUT}))


async def call_with_retry(
    policy: RetryPolicy,
    func: Callable[..., Awaitable[T]],
    *args,
    context: dict[str, object] | None = None,
    **kwargs,
) -> T:
    attempt = 1
    while True:
        try:
            return await func(*args, **kwargs)
        except GradingError as exc:
            if not policy.should_retry(exc, attempt):
                raise
            logger.warning(
                "%s, retrying (attempt %d of %d)",
                exc.message,
                attempt + 1,
                policy.max_attempts,
                extra={**(context or {}), "stage": "retry", "attempt": attempt + 1, "error_code": exc.code.value},
            )
            delay = policy.delay_for(attempt)
            if delay:
                await asyncio.sleep(delay)
            attempt += 1
