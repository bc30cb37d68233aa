"""Retry policy and async retry with backoff."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRY_MODES = ("fixed", "exponential")

# Substrings of exception type names treated as transient
_TRANSIENT_NAME_MARKERS = ("Connect", "Timeout", "Network")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry settings forwarded unchanged to the remote-call layer.

    The resolution core never retries on its own; collaborators that talk to
    the network decide how to honour these values.
    """
    delay: float = 0.8
    max_delay: float = 60.0
    max_retries: int = 3
    mode: str = "exponential"
    network_timeout: float = 100.0

    def __post_init__(self) -> None:
        if self.mode not in RETRY_MODES:
            raise ValueError(f"retry mode must be one of {RETRY_MODES}, got {self.mode!r}")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based), capped at max_delay."""
        if self.mode == "fixed":
            return min(self.delay, self.max_delay)
        return min(self.delay * (2 ** attempt), self.max_delay)


def is_transient(exc: BaseException, retryable_status_codes: frozenset[int] = frozenset({429, 502, 503, 504})) -> bool:
    """Best-effort check for errors worth retrying."""
    response = getattr(exc, "response", None)
    status_code = getattr(response, "status_code", None)
    if status_code in retryable_status_codes:
        return True

    error_type = type(exc).__name__
    return any(marker in error_type for marker in _TRANSIENT_NAME_MARKERS)


async def retry_async(
    func: Callable[..., Awaitable[T]],
    policy: RetryPolicy | None = None,
    *args: Any,
    is_retryable: Callable[[BaseException], bool] = is_transient,
    **kwargs: Any,
) -> T:
    """
    Await ``func`` with backoff retry on transient failures.

    Args:
        func: Coroutine function to call
        policy: Retry policy (defaults apply when None)
        *args, **kwargs: Arguments passed to func
        is_retryable: Predicate deciding whether an error is retried

    Returns:
        Result of func

    Raises:
        The last exception once retries are exhausted or the error is not retryable
    """
    if policy is None:
        policy = RetryPolicy()

    for attempt in range(policy.max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not is_retryable(e) or attempt == policy.max_retries:
                raise

            # Jitter up to 25% either way
            delay = policy.delay_for(attempt) * (0.75 + random.random() * 0.5)
            logger.warning(
                f"Retry {attempt + 1}/{policy.max_retries} after {delay:.1f}s: {e}"
            )
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")
