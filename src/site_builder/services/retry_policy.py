"""Bounded retry with a flat delay for async external calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from site_builder.services.generation_errors import is_retryable_generation_error

_LOGGER = logging.getLogger("site_builder.generator")

R = TypeVar("R")

RetryPredicate = Callable[[BaseException], bool]


async def with_retry(
    operation: Callable[[], Awaitable[R]],
    *,
    max_retries: int = 1,
    delay_seconds: float = 2.0,
    operation_name: str | None = None,
    should_retry: RetryPredicate | None = None,
) -> R:
    """Await ``operation``, retrying failures up to ``max_retries`` extra times.

    The last exception is re-raised once attempts are exhausted or when
    ``should_retry`` rejects it.
    """

    if max_retries < 0:
        raise ValueError("max_retries must be zero or greater")
    if delay_seconds < 0:
        raise ValueError("delay_seconds must be zero or greater")

    predicate = should_retry or is_retryable_generation_error
    for attempt in range(max_retries + 1):
        try:
            return await operation()
        except Exception as error:
            if attempt >= max_retries or not predicate(error):
                raise
            _LOGGER.warning(
                "generation_retrying",
                extra={
                    "operation": operation_name,
                    "attempt": attempt + 1,
                    "max_retries": max_retries,
                    "error_type": error.__class__.__name__,
                    "error_message": str(error),
                },
            )

        await asyncio.sleep(delay_seconds)

    raise RuntimeError("retry loop exited unexpectedly")


__all__ = ["RetryPredicate", "with_retry"]
