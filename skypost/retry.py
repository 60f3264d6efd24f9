from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """
    Exponential backoff for transport calls.

    - max_attempts includes the first try (3 => 1 try + 2 retries).
    - base_delay_seconds is the wait after the first failure; it doubles per failure
      up to max_delay_seconds.
    - jitter_ratio spreads each delay over [1-jitter, 1+jitter].
    - retry_after_cap_seconds bounds a server Retry-After hint (0 means no cap).
    """

    max_attempts: int = 3
    base_delay_seconds: float = 0.5
    max_delay_seconds: float = 8.0
    jitter_ratio: float = 0.2
    retry_after_cap_seconds: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must be >= 0")
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")
        if not (0.0 <= self.jitter_ratio <= 1.0):
            raise ValueError("jitter_ratio must be between 0 and 1")
        if self.retry_after_cap_seconds < 0:
            raise ValueError("retry_after_cap_seconds must be >= 0")


@dataclass(frozen=True)
class RetryEvent:
    operation: str
    failure_attempt: int
    next_attempt: int
    max_attempts: int

    delay_seconds: float
    retry_after_seconds: float | None
    reason: str | None

    error_type: str
    error_message: str

    context_url: str | None


IsRetryableFn = Callable[[BaseException], tuple[bool, float | None, str | None]]
OnRetryFn = Callable[[RetryEvent], None]
SleepFn = Callable[[float], None]


def _backoff_seconds(failure_attempt: int, cfg: RetryConfig) -> float:
    exponent = max(0, int(failure_attempt) - 1)
    return min(cfg.max_delay_seconds, max(0.0, cfg.base_delay_seconds * (2**exponent)))


def _jittered(delay: float, cfg: RetryConfig) -> float:
    if delay <= 0.0 or cfg.jitter_ratio <= 0:
        return max(0.0, delay)
    return max(0.0, delay * random.uniform(1.0 - cfg.jitter_ratio, 1.0 + cfg.jitter_ratio))


def _capped_retry_after(value: float | None, cfg: RetryConfig) -> float | None:
    if value is None or value < 0:
        return None
    if cfg.retry_after_cap_seconds > 0:
        return min(float(value), cfg.retry_after_cap_seconds)
    return float(value)


def call_with_retries(
    fn: Callable[[], T],
    *,
    cfg: RetryConfig,
    is_retryable: IsRetryableFn,
    operation: str,
    on_retry: OnRetryFn | None = None,
    sleep_fn: SleepFn | None = None,
    context_url: str | None = None,
) -> T:
    """
    Call fn() and retry it while is_retryable(exc) says so and attempts remain.

    The last failure (or the first non-retryable one) is re-raised unchanged.
    """
    op = (operation or "").strip() or "operation"
    sleeper = sleep_fn or time.sleep
    attempts = int(cfg.max_attempts)

    attempt = 1
    while True:
        try:
            return fn()
        except Exception as exc:
            retryable, retry_after, reason = is_retryable(exc)
            if not retryable or attempt >= attempts:
                raise

            delay = _backoff_seconds(attempt, cfg)
            hint = _capped_retry_after(retry_after, cfg)
            if hint is not None:
                delay = max(delay, hint)
            delay = _jittered(delay, cfg)

            if on_retry is not None:
                on_retry(
                    RetryEvent(
                        operation=op,
                        failure_attempt=attempt,
                        next_attempt=attempt + 1,
                        max_attempts=attempts,
                        delay_seconds=delay,
                        retry_after_seconds=hint,
                        reason=reason,
                        error_type=type(exc).__name__,
                        error_message=(str(exc) or "").strip(),
                        context_url=context_url,
                    )
                )

            if delay > 0:
                sleeper(delay)
            attempt += 1
