from __future__ import annotations

from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm.exc import StaleDataError
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from livecast.core.logging import get_logger
from livecast.services.errors import TransientConflictError

T = TypeVar("T")

# serialization_failure, deadlock_detected
TRANSIENT_SQLSTATES = frozenset({"40001", "40P01"})
TRANSIENT_SQLITE_MESSAGES = ("database is locked", "database table is locked")

logger = get_logger(component="transaction_retry")


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_transient_db_error(exc: BaseException) -> bool:
    """Return True when ``exc`` signals contention rather than invalid data."""
    if isinstance(exc, (TransientConflictError, StaleDataError)):
        return True
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return False
        if _sqlstate(exc) in TRANSIENT_SQLSTATES:
            return True
        message = str(exc.orig).lower()
        return any(fragment in message for fragment in TRANSIENT_SQLITE_MESSAGES)
    return False


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning(
        "transaction_retry",
        attempt=state.attempt_number,
        error=type(exc).__name__ if exc else None,
    )


async def retry_transaction(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    backoff_s: float = 0.0,
    is_transient: Callable[[BaseException], bool] = is_transient_db_error,
) -> T:
    """Run ``operation`` and re-run it on transient conflicts.

    ``operation`` must open its own transaction so that every attempt starts
    from a clean session. Once ``attempts`` runs are used up the last error is
    re-raised unchanged. Errors rejected by ``is_transient`` propagate on the
    first occurrence.
    """
    async for attempt in AsyncRetrying(
        retry=retry_if_exception(is_transient),
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_exponential(multiplier=backoff_s, max=max(backoff_s * 16, 0)),
        before_sleep=_log_retry,
        reraise=True,
    ):
        with attempt:
            return await operation()
    raise AssertionError("unreachable")  # pragma: no cover


__all__ = ["retry_transaction", "is_transient_db_error", "TRANSIENT_SQLSTATES"]
