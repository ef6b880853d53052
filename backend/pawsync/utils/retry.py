# backend/pawsync/utils/retry.py
"""
Retry Manager for pipeline stages.

Bounded attempts with linearly increasing backoff (base * attempt number).
Used for capture and object-store writes; conversion is never retried.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, Tuple, Type, TypeVar

from ..enums import LoggerName
from ..services.logger import get_service_logger

logger = get_service_logger(LoggerName.PIPELINE_ORCHESTRATOR)

T = TypeVar("T")


@dataclass
class RetryResult(Generic[T]):
    """Outcome of a retried operation."""

    success: bool
    value: Optional[T] = None
    error: Optional[BaseException] = None
    attempts: int = 0


class RetryManager:
    """
    Runs an async operation up to ``max_attempts`` times.

    An exception is retried when it is an instance of ``retry_on`` and does not
    carry ``retryable = False``. Anything else ends the loop immediately.
    """

    def __init__(
        self,
        max_attempts: int,
        backoff_seconds: float,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize retry manager.

        Args:
            max_attempts: Total attempts, including the first one
            backoff_seconds: Base delay; attempt N waits base * N before N+1
            sleep: Awaitable sleep, injectable for tests
        """
        if max_attempts <= 0:
            raise ValueError("max_attempts must be greater than 0")
        if backoff_seconds < 0:
            raise ValueError("backoff_seconds cannot be negative")

        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    def get_retry_delay(self, attempt: int) -> float:
        """Delay in seconds after a failed ``attempt`` (1-based)"""
        return self.backoff_seconds * max(1, attempt)

    def _is_retryable(
        self, error: BaseException, retry_on: Tuple[Type[BaseException], ...]
    ) -> bool:
        if not isinstance(error, retry_on):
            return False
        return getattr(error, "retryable", True)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        context: Optional[Dict[str, Any]] = None,
    ) -> RetryResult[T]:
        """
        Execute ``operation`` with bounded retries.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            description: Human-readable name for log lines
            retry_on: Exception types worth another attempt
            context: Extra log context (pet id etc.)

        Returns:
            RetryResult with the value on success or the last error on failure
        """
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                value = await operation()
                if attempt > 1:
                    logger.info(
                        f"{description} succeeded on attempt {attempt}",
                        extra_context=context,
                    )
                return RetryResult(success=True, value=value, attempts=attempt)

            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e
                if not self._is_retryable(e, retry_on):
                    logger.warning(
                        f"{description} failed with non-retryable error: {e}",
                        extra_context=context,
                    )
                    return RetryResult(success=False, error=e, attempts=attempt)

                if attempt >= self.max_attempts:
                    break

                delay = self.get_retry_delay(attempt)
                logger.warning(
                    f"{description} failed (attempt {attempt}/{self.max_attempts}), "
                    f"retrying in {delay:.1f}s: {e}",
                    extra_context=context,
                )
                await self._sleep(delay)

        logger.error(
            f"{description} failed after {self.max_attempts} attempts: {last_error}",
            extra_context=context,
        )
        return RetryResult(success=False, error=last_error, attempts=self.max_attempts)
