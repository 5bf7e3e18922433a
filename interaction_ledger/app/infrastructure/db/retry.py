from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy import exc as sa_exc

from interaction_ledger.app.domain.errors import StorageUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(error: BaseException) -> bool:
    """Errors worth retrying: lost connections, lock timeouts, exhausted pool."""
    if isinstance(error, (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError)):
        return True
    if isinstance(error, sa_exc.DBAPIError) and error.connection_invalidated:
        return True
    return isinstance(error, (ConnectionError, asyncio.TimeoutError))


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    base_delay: float = 0.05
    max_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.attempts <= 0:
            raise ValueError("attempts must be positive")


async def run_with_retry(
    operation: str,
    func: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
) -> T:
    """
    Await `func()` retrying transient storage errors with exponential backoff.

    Non-transient errors propagate unchanged. Once `policy.attempts` are used
    up the last transient error is surfaced as StorageUnavailable.
    """
    delay = policy.base_delay
    for attempt in range(1, policy.attempts + 1):
        try:
            return await func()
        except Exception as e:
            if not is_transient(e):
                raise
            if attempt >= policy.attempts:
                logger.error(
                    "Storage operation %s failed after %s attempts: %s",
                    operation,
                    attempt,
                    e,
                )
                raise StorageUnavailable(
                    f"{operation} failed after {attempt} attempts: {e}"
                ) from e

            logger.warning(
                "Transient storage error in %s (attempt %s/%s), retrying in %.3fs: %s",
                operation,
                attempt,
                policy.attempts,
                delay,
                e,
            )
            await asyncio.sleep(delay)
            delay = min(policy.max_delay, delay * 2)

    raise AssertionError("unreachable")
