"""
Retry executor with exponential backoff and jitter.

Wraps any fallible async operation. The executor knows nothing about records
or providers: every ``Exception`` is retried up to ``max_attempts`` unless a
``retry_on`` hook says otherwise, and the last failure is re-raised unchanged
once attempts run out.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from enricher.utils.logger import get_logger

log = get_logger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]
SleepFn = Callable[[float], Awaitable[Any]]
RetryPredicate = Callable[[BaseException], bool]


@dataclass(frozen=True, slots=True)
class RetryConfig:
    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    max_jitter: float = 0.5  # seconds, drawn from [0, max_jitter)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_jitter < 0:
            raise ValueError("base_delay and max_jitter must be non-negative")

    def base_wait(self, attempt: int) -> float:
        """Delay before the retry that follows ``attempt``, without jitter."""
        return self.base_delay * (2 ** (attempt - 1))


DEFAULT_RETRY_CONFIG = RetryConfig()


class BackoffExecutor:
    """Run an async operation with bounded retries."""

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        *,
        sleep: SleepFn = asyncio.sleep,
        retry_on: Optional[RetryPredicate] = None,
    ) -> None:
        self.config = config or DEFAULT_RETRY_CONFIG
        self._sleep = sleep
        self._retry_on = retry_on

    def _should_retry(self, exc: BaseException) -> bool:
        # CancelledError and other BaseExceptions always propagate
        if not isinstance(exc, Exception):
            return False
        if self._retry_on is None:
            return True
        return bool(self._retry_on(exc))

    def _notice(self, label: str, config: RetryConfig) -> Callable[[RetryCallState], None]:
        def before_sleep(retry_state: RetryCallState) -> None:
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            log.warning(
                f"Retry {retry_state.attempt_number}/{config.max_attempts} for \"{label}\" "
                f"after {round(delay * 1000)}ms: {exc}"
            )

        return before_sleep

    async def execute(self, operation: Operation[T], label: str, config: Optional[RetryConfig] = None) -> T:
        """
        Await ``operation()`` until it succeeds or attempts are exhausted.

        Args:
            operation: Zero-argument callable returning an awaitable
            label: Human readable context for progress notices
            config: Per-call override of the executor's RetryConfig

        Returns:
            Whatever the first successful attempt returned

        Raises:
            The last exception raised by ``operation``
        """
        cfg = config or self.config
        retrying = AsyncRetrying(
            stop=stop_after_attempt(cfg.max_attempts),
            wait=wait_exponential(multiplier=cfg.base_delay, exp_base=2, min=0)
            + wait_random(0, cfg.max_jitter),
            retry=retry_if_exception(self._should_retry),
            before_sleep=self._notice(label, cfg),
            sleep=self._sleep,
            reraise=True,
        )
        return await retrying(operation)


async def with_retry(operation: Operation[T], label: str, config: Optional[RetryConfig] = None) -> T:
    """Shortcut using a default executor."""
    return await BackoffExecutor(config).execute(operation, label)


__all__ = ["BackoffExecutor", "DEFAULT_RETRY_CONFIG", "RetryConfig", "with_retry"]
