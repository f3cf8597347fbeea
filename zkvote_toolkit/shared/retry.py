"""
Retry utilities for handling transient failures.

This module provides a functional helper and a shared config for retrying async
operations (contract view calls, block number reads) with configurable
backoff.

Exception Handling:
- By default, retries on RetryableException, network errors and web3 RPC errors
- NonRetryableException is never retried (propagates immediately)
- Can customize retryable_exceptions per operation
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from web3.exceptions import (
    BadFunctionCallOutput,
    BlockNotFound,
    Web3Exception,
)

from zkvote_toolkit.shared.exceptions import (
    NonRetryableException,
    RetryableException,
)
from zkvote_toolkit.shared.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)

DEFAULT_RETRYABLE_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    RetryableException,
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    OSError,
    Web3Exception,
    BadFunctionCallOutput,
    BlockNotFound,
)


def _backoff_delay(
    attempt: int, base_delay: float, max_delay: float, exponential: bool
) -> float:
    if exponential:
        return min(base_delay * (2**attempt), max_delay)
    return base_delay


async def retry_async_operation(
    operation: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential: bool = True,
    retryable_exceptions: Optional[Tuple[Type[Exception], ...]] = None,
    operation_name: Optional[str] = None,
    **kwargs: Any,
) -> T:
    """
    Retry an async operation with configurable backoff.

    Args:
        operation: Async function to call
        *args: Positional arguments for the operation
        max_attempts: Maximum retry attempts
        base_delay: Initial delay between retries
        max_delay: Maximum delay between retries
        exponential: Use exponential backoff
        retryable_exceptions: Exception types to retry on
        operation_name: Optional name for logging
        **kwargs: Keyword arguments for the operation

    Returns:
        Result of the operation

    Example:
        root = await retry_async_operation(
            contract.get_root,
            max_attempts=5,
            operation_name="get_root",
        )
    """
    if retryable_exceptions is None:
        retryable_exceptions = DEFAULT_RETRYABLE_EXCEPTIONS

    name = operation_name or getattr(operation, "__name__", "operation")
    last_exception: Optional[Exception] = None

    for attempt in range(max_attempts):
        try:
            return await operation(*args, **kwargs)
        except NonRetryableException:
            raise
        except retryable_exceptions as e:
            last_exception = e

            if attempt < max_attempts - 1:
                delay = _backoff_delay(
                    attempt, base_delay, max_delay, exponential
                )
                logger.warning(
                    f"Attempt {attempt + 1}/{max_attempts} failed for "
                    f"{name}: {e}. Retrying in {delay:.1f}s..."
                )
                await asyncio.sleep(delay)

    if last_exception:
        raise last_exception
    raise RuntimeError(
        "Unexpected state: no exception but all attempts exhausted"
    )


class RetryConfig:
    """
    Configuration class for retry behavior.

    Can be used to share retry settings across multiple operations.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        exponential: bool = True,
        retryable_exceptions: Optional[Tuple[Type[Exception], ...]] = None,
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential = exponential
        self.retryable_exceptions = (
            retryable_exceptions or DEFAULT_RETRYABLE_EXCEPTIONS
        )

    async def run(
        self, operation: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        """Run an async operation under this config."""
        return await retry_async_operation(
            operation,
            *args,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            exponential=self.exponential,
            retryable_exceptions=self.retryable_exceptions,
            **kwargs,
        )


# Contract view calls: a handful of quick attempts
RPC_RETRY_CONFIG = RetryConfig(
    max_attempts=3,
    base_delay=1.0,
    max_delay=10.0,
    exponential=True,
)
