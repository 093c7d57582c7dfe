from __future__ import annotations

import random
import time
from collections.abc import Callable
from typing import TypeVar


T = TypeVar("T")

RetryHook = Callable[[int, BaseException, float], None]


def backoff_delay(attempt: int, base_delay: float, backoff: float = 2.0) -> float:
    """Delay before retry number ``attempt + 1`` (``base * backoff**attempt``)."""
    return base_delay * (backoff**attempt)


def call_with_retry(
    func: Callable[[int], T],
    *,
    retries: int,
    base_delay: float,
    backoff: float = 2.0,
    max_delay: float | None = None,
    jitter: float = 0.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    on_retry: RetryHook | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``func(attempt)`` until it succeeds or ``retries`` extra attempts fail.

    ``attempt`` starts at 0. ``on_retry(next_attempt, error, delay)`` runs before
    each wait so callers can surface the retry counter.
    """
    for attempt in range(retries + 1):
        try:
            return func(attempt)
        except retry_on as exc:  # type: ignore[misc]
            if attempt >= retries:
                raise
            delay = backoff_delay(attempt, base_delay, backoff)
            if max_delay is not None:
                delay = min(max_delay, delay)
            if jitter:
                delay += random.uniform(0, jitter)
            if on_retry is not None:
                on_retry(attempt + 1, exc, delay)
            sleep(delay)
    raise RuntimeError("retry loop exited unexpectedly")


def retry(
    attempts: int = 3,
    initial_delay: float = 0.15,
    backoff: float = 2.0,
    max_delay: float = 1.5,
    jitter: float = 0.1,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Simple retry decorator with exponential backoff and jitter."""

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        def wrapper(*args, **kwargs) -> T:
            return call_with_retry(
                lambda _attempt: func(*args, **kwargs),
                retries=max(0, attempts - 1),
                base_delay=initial_delay,
                backoff=backoff,
                max_delay=max_delay,
                jitter=jitter,
                retry_on=retry_on,
            )

        return wrapper

    return decorator
