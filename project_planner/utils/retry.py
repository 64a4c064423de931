"""Retry utilities for the pipeline."""

import asyncio
import errno
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import httpx
import structlog

from project_planner.errors import OperationFailedError, PlannerError

logger = structlog.get_logger()

T = TypeVar("T")

RETRYABLE_CODES = frozenset(
    {
        "ECONNRESET",
        "ETIMEDOUT",
        "ECONNREFUSED",
        "NETWORK_ERROR",
        "RATE_LIMIT",
        "SERVER_ERROR",
        "TIMEOUT",
    }
)

RETRYABLE_MESSAGE_MARKERS = ("overloaded", "rate limit", "timeout", "capacity")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    initial_delay: float = 1.0
    backoff_factor: float = 1.5
    max_delay: float = 30.0
    retryable_errors: tuple[type[Exception], ...] = ()

    @classmethod
    def from_settings(cls, settings: Any) -> "RetryConfig":
        """Build the default policy from application settings."""
        return cls(
            max_retries=settings.max_retries,
            initial_delay=settings.retry_initial_delay,
            backoff_factor=settings.retry_backoff,
            max_delay=settings.retry_max_delay,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        return min(
            self.initial_delay * (self.backoff_factor ** (attempt - 1)),
            self.max_delay,
        )


def _status_of(error: BaseException) -> int | None:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    return None


def _code_of(error: BaseException) -> str | None:
    code = getattr(error, "code", None)
    if isinstance(code, str):
        return code.upper()
    if isinstance(error, OSError) and error.errno is not None:
        return errno.errorcode.get(error.errno)
    return None


def is_retryable(error: BaseException, config: RetryConfig | None = None) -> bool:
    """Classify an error as transient (retry) or fatal.

    Typed planner errors decide for themselves. Everything else is judged by
    error code, exception type, HTTP status and finally the message text.
    """
    if config and config.retryable_errors and isinstance(error, config.retryable_errors):
        return True

    if isinstance(error, PlannerError):
        return error.retryable

    if _code_of(error) in RETRYABLE_CODES:
        return True

    if isinstance(
        error,
        (ConnectionResetError, ConnectionRefusedError, TimeoutError, asyncio.TimeoutError),
    ):
        return True

    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return True

    status = _status_of(error)
    if status is not None and (status >= 500 or status == 429):
        return True

    message = str(error).lower()
    return any(marker in message for marker in RETRYABLE_MESSAGE_MARKERS)


class RetryExecutor:
    """Runs async operations with classified retry and exponential backoff.

    The sleep function is injectable so tests can record delays instead of
    waiting for them.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config or RetryConfig()
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        context: str,
        config: RetryConfig | None = None,
    ) -> T:
        """Execute an operation, retrying transient failures.

        Args:
            operation: Zero-argument coroutine function to run
            context: Label used in logs and attached to the failure
            config: Policy overriding the executor's default

        Returns:
            Result of the operation

        Raises:
            OperationFailedError: On a fatal error or once retries are exhausted
        """
        config = config or self.config
        attempt = 0

        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as e:
                retryable = is_retryable(e, config)
                retries_attempted = attempt - 1

                if not retryable:
                    logger.error(
                        "operation_failed",
                        context=context,
                        attempt=attempt,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    raise OperationFailedError(e, retries_attempted, context, False) from e

                if retries_attempted >= config.max_retries:
                    logger.error(
                        "retry_exhausted",
                        context=context,
                        attempts=attempt,
                        error=str(e),
                    )
                    raise OperationFailedError(e, retries_attempted, context, True) from e

                delay = config.delay_for(attempt)
                logger.warning(
                    "retry_attempt",
                    context=context,
                    attempt=attempt,
                    max_retries=config.max_retries,
                    delay=delay,
                    error=str(e),
                )
                await self._sleep(delay)
