"""
External call wrapper with timeout and retry logic.

Provides centralized timeout and bounded exponential backoff for idempotent
reads against external services (fee oracle, balance reads, sponsor quotes).
Submissions must not go through `call_with_retry`; see
`AccountAbstractionBuilder.submit` for the poll-before-retry strategy.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger

from paylink.config.constants import (
    EXTERNAL_CALL_TIMEOUT,
    EXTERNAL_MAX_RETRIES,
    EXTERNAL_RETRY_DELAY_BASE,
    EXTERNAL_RETRY_MAX_DELAY,
)
from paylink.utils.exceptions import ExternalServiceError, is_retryable_read

T = TypeVar("T")


async def with_timeout(
    coro: Awaitable[T],
    timeout: float = EXTERNAL_CALL_TIMEOUT,
    operation_name: str = "external call",
) -> T:
    """
    Execute awaitable with timeout.

    Args:
        coro: Awaitable to execute
        timeout: Timeout in seconds
        operation_name: Operation name for logging

    Returns:
        Result of the awaitable

    Raises:
        ExternalServiceError: If operation times out
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except TimeoutError as e:
        error_msg = f"{operation_name} timed out after {timeout}s"
        logger.error(error_msg)
        raise ExternalServiceError(error_msg, operation=operation_name) from e


def backoff_delay(attempt: int, base: float = EXTERNAL_RETRY_DELAY_BASE) -> float:
    """
    Delay before the next attempt: base * 2^attempt, capped.

    Examples:
        >>> backoff_delay(0, 0.5), backoff_delay(2, 0.5), backoff_delay(10, 0.5)
        (0.5, 2.0, 8.0)
    """
    return min(base * (2 ** attempt), EXTERNAL_RETRY_MAX_DELAY)


async def call_with_retry(
    coro_factory: Callable[[], Awaitable[T]],
    operation_name: str,
    max_retries: int = EXTERNAL_MAX_RETRIES,
    timeout: float = EXTERNAL_CALL_TIMEOUT,
    base_delay: float = EXTERNAL_RETRY_DELAY_BASE,
) -> T:
    """
    Execute an idempotent external read with retry and timeout.

    Args:
        coro_factory: Factory returning a fresh awaitable per attempt
        operation_name: Operation name for logging
        max_retries: Maximum number of attempts
        timeout: Timeout per attempt in seconds
        base_delay: First backoff delay in seconds

    Returns:
        Result of the call

    Raises:
        ExternalServiceError: If all attempts fail
    """
    last_error: Exception | None = None

    for attempt in range(max_retries):
        try:
            result = await with_timeout(
                coro_factory(),
                timeout=timeout,
                operation_name=f"{operation_name} (attempt {attempt + 1}/{max_retries})",
            )

            if attempt > 0:
                logger.success(f"{operation_name} succeeded on attempt {attempt + 1}")

            return result

        except Exception as e:
            if not is_retryable_read(e):
                raise
            last_error = e

            if attempt < max_retries - 1:
                delay = backoff_delay(attempt, base_delay)
                logger.warning(
                    f"{operation_name} failed on attempt {attempt + 1}/{max_retries}: {e}. "
                    f"Retrying in {delay}s..."
                )
                await asyncio.sleep(delay)
            else:
                logger.error(f"{operation_name} failed after {max_retries} attempts: {e}")

    raise ExternalServiceError(
        f"{operation_name} failed after {max_retries} attempts",
        operation=operation_name,
        last_error=str(last_error),
    ) from last_error
