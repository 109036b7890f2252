from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError


T = TypeVar("T")

_log = logging.getLogger("stacklume.db")

_TRANSIENT_PATTERNS = (
    "fetch failed",
    "network",
    "timeout",
    "timed out",
    "econnreset",
    "econnrefused",
    "connection",
    "temporarily unavailable",
    "service unavailable",
    "too many connections",
    "database is locked",
    "ssl",
    "tls",
)


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    backoff_base_s: float = 0.5
    backoff_max_s: float = 5.0


def is_transient_error(e: BaseException) -> bool:
    """
    True for infrastructure failures worth retrying.

    Integrity (conflict) errors are never transient, even when the driver
    message mentions a connection.
    """
    if isinstance(e, IntegrityError):
        return False
    if isinstance(e, DBAPIError) and getattr(e, "connection_invalidated", False):
        return True
    if isinstance(e, (OperationalError, ConnectionError, TimeoutError)):
        return True
    msg = str(e).lower()
    return any(p in msg for p in _TRANSIENT_PATTERNS)


async def with_retry(
    op: Callable[[], Awaitable[T]],
    *,
    operation_name: str = "database operation",
    policy: RetryPolicy | None = None,
) -> T:
    """
    Await `op()` with bounded retries + exponential backoff (full jitter).

    Only transient errors are retried; anything else propagates on first failure.
    """
    pol = policy or RetryPolicy()
    attempts = max(1, int(pol.attempts))

    for attempt in range(1, attempts + 1):
        try:
            return await op()
        except Exception as e:
            if attempt >= attempts or not is_transient_error(e):
                _log.error(
                    "db operation failed operation=%s attempts=%s error=%s",
                    operation_name,
                    attempt,
                    e,
                )
                raise
            backoff = min(
                float(pol.backoff_max_s),
                float(pol.backoff_base_s) * (2.0 ** float(attempt - 1)),
            )
            _log.warning(
                "db operation retry operation=%s attempt=%s/%s backoff_s=%.3f error=%s",
                operation_name,
                attempt,
                attempts,
                backoff,
                e,
            )
            await asyncio.sleep(random.random() * max(0.0, backoff))

    # Should never happen, but keep sane behavior.
    raise RuntimeError(f"with_retry exhausted without result: {operation_name}")


def retry_policy_from_settings(settings: Any) -> RetryPolicy:
    """
    Build a RetryPolicy from settings with safe defaults.
    """
    try:
        attempts = int(getattr(settings, "db_retry_attempts", 3))
    except Exception:
        attempts = 3
    try:
        backoff_base_s = float(getattr(settings, "db_retry_backoff_base_s", 0.5))
    except Exception:
        backoff_base_s = 0.5
    try:
        backoff_max_s = float(getattr(settings, "db_retry_backoff_max_s", 5.0))
    except Exception:
        backoff_max_s = 5.0
    return RetryPolicy(
        attempts=max(1, int(attempts)),
        backoff_base_s=max(0.0, float(backoff_base_s)),
        backoff_max_s=max(0.0, float(backoff_max_s)),
    )
