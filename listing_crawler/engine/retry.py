"""Bounded retry around a single fetch-and-extract task."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Generic, TypeVar

import structlog

from ..config import RetryPolicyConfig
from ..errors import ExtractionError, FetchError

T = TypeVar("T")


@dataclass
class RetryOutcome(Generic[T]):
    """Result of one executed task, successful or dropped."""

    value: list[T] = field(default_factory=list)
    attempts: int = 0
    dropped: bool = False
    last_error: Exception | None = None


class RetryExecutor:
    """Run an action until it succeeds or its attempts are exhausted.

    Failures from the fetch taxonomy (network, timeout, extraction) are
    absorbed: once ``max_attempts`` consecutive attempts fail, the task yields
    an empty list and is reported as dropped. Any other exception propagates.
    """

    def __init__(
        self,
        policy: RetryPolicyConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.policy = policy or RetryPolicyConfig()
        self._sleep = sleep
        self.logger = logger or structlog.get_logger("listing_crawler.retry")

    def execute(
        self,
        action: Callable[[], list[T]],
        max_attempts: int | None = None,
        retry_delay: float | None = None,
    ) -> list[T]:
        return self.run(action, max_attempts=max_attempts, retry_delay=retry_delay).value

    def run(
        self,
        action: Callable[[], list[T]],
        *,
        max_attempts: int | None = None,
        retry_delay: float | None = None,
        label: str | None = None,
    ) -> RetryOutcome[T]:
        limit = max_attempts if max_attempts is not None else self.policy.max_attempts
        if limit < 1:
            raise ValueError("max_attempts must be >= 1")
        attempt = 0
        last_error: Exception | None = None
        while attempt < limit:
            try:
                result = action()
            except FetchError as exc:
                attempt += 1
                last_error = exc
                self.logger.warning(
                    "attempt_failed",
                    task=label,
                    attempt=attempt,
                    max_attempts=limit,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                if isinstance(exc, ExtractionError) and not self.policy.retry_extraction_errors:
                    break
                if attempt < limit:
                    self._sleep(self._delay(attempt, retry_delay))
                continue
            return RetryOutcome(value=list(result or []), attempts=attempt + 1)

        self.logger.error(
            "page_dropped",
            task=label,
            attempts=attempt,
            error_type=type(last_error).__name__ if last_error else None,
            error=str(last_error) if last_error else None,
        )
        return RetryOutcome(value=[], attempts=attempt, dropped=True, last_error=last_error)

    def _delay(self, attempt: int, override: float | None) -> float:
        if override is not None:
            return override
        return self.policy.delay_for(attempt)


__all__ = ["RetryExecutor", "RetryOutcome"]
