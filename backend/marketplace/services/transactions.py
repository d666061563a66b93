"""Transactional coordinator for calendar + booking mutations.

Each unit of work gets its own session and transaction. The work either
commits as a whole or is rolled back before the error leaves ``run``.
Optimistic conflicts (a concurrent writer bumped the listing version, the
database reported a serialization failure or a lock timeout) re-run the
whole unit against fresh state, so the loser of a race re-reads the winner's
calendar and fails with a domain error rather than a storage error.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from marketplace.core.errors import BookingError, TransactionAbort

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL serialization_failure / deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}


def is_retryable(exc: Exception) -> bool:
    """True when the failure came from a concurrent writer, not from bad data."""
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, DBAPIError):
        orig = exc.orig
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if sqlstate in RETRYABLE_SQLSTATES:
            return True
        if "database is locked" in str(orig):
            return True
    return False


class TransactionalCoordinator:
    """Runs async units of work atomically with bounded optimistic retry."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_attempts: int = 3,
        retry_backoff_seconds: float = 0.05,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.session_factory = session_factory
        self.max_attempts = max_attempts
        self.retry_backoff_seconds = retry_backoff_seconds

    async def run(
        self,
        work: Callable[[AsyncSession], Awaitable[T]],
        *,
        name: str = "unit",
    ) -> T:
        """Execute ``work(session)`` in one transaction and return its result.

        BookingError subclasses raised by the work propagate unchanged after
        rollback. Storage errors are wrapped as TransactionAbort.
        """
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            async with self.session_factory() as session:
                try:
                    async with session.begin():
                        return await work(session)
                except BookingError:
                    raise
                except SQLAlchemyError as e:
                    if not is_retryable(e):
                        logger.error(f"[TXN] {name} aborted: {e.__class__.__name__}: {e}")
                        raise TransactionAbort(
                            f"Operation '{name}' could not be completed, please retry"
                        ) from e
                    last_error = e
                    logger.warning(
                        f"[TXN] {name} conflicted on attempt {attempt}/{self.max_attempts}: "
                        f"{e.__class__.__name__}"
                    )
            if attempt < self.max_attempts:
                await asyncio.sleep(self.retry_backoff_seconds * attempt)

        logger.error(f"[TXN] {name} gave up after {self.max_attempts} attempts")
        raise TransactionAbort(
            f"Operation '{name}' conflicted with concurrent updates, please retry"
        ) from last_error
