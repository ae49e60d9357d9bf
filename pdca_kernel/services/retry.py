"""
pdca_kernel.services.retry -- Backoff for transient store failures.

Responsibility:
    Re-invoke a workflow operation while it reports UNAVAILABLE, waiting
    between attempts per ``RetryPolicy``.  ``pdca_config`` loads the
    policy from YAML; the kernel never imports the config package.

Invariants enforced:
    - Only UNAVAILABLE is retried.  CONFLICT is returned to the caller
      untouched; reloading and deciding again is the caller's policy.
    - At most ``policy.max_attempts`` calls are made; the last result is
      returned as-is.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from pdca_kernel.domain.results import WorkflowResult
from pdca_kernel.logging_config import get_logger

logger = get_logger("services.retry")


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff for UNAVAILABLE results.  ``max_attempts`` counts the first call."""

    max_attempts: int = 3
    initial_delay_seconds: float = 0.1
    backoff_multiplier: float = 2.0
    max_delay_seconds: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(
                f"retry.max_attempts must be >= 1, got {self.max_attempts}"
            )
        if self.initial_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("retry delays must not be negative")
        if self.backoff_multiplier < 1:
            raise ValueError(
                f"retry.backoff_multiplier must be >= 1, got {self.backoff_multiplier}"
            )

    def delay_for(self, attempt: int) -> float:
        """Delay after the ``attempt``-th failed call (1-based)."""
        delay = self.initial_delay_seconds * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_delay_seconds)


def run_with_retry(
    operation: Callable[[], WorkflowResult],
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> WorkflowResult:
    policy = policy or RetryPolicy()
    attempt = 1
    while True:
        result = operation()
        if result.ok or not result.error.retryable:
            return result
        if attempt >= policy.max_attempts:
            logger.warning(
                "retry_exhausted",
                extra={"attempts": attempt, "error_code": result.error.code},
            )
            return result
        delay = policy.delay_for(attempt)
        logger.info(
            "retry_scheduled",
            extra={
                "attempt": attempt,
                "delay_seconds": delay,
                "error_code": result.error.code,
            },
        )
        sleep(delay)
        attempt += 1
