"""
Transaction management for ODS quota database operations.

Runs a unit of work inside one database transaction with automatic rollback,
a per-attempt timeout and retry with exponential backoff on transient lock
conflicts. Infrastructure failures surface as ``StoreUnavailable``; domain
errors raised by the unit of work propagate unchanged after rollback.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from odsquota.exceptions import StoreUnavailable
from odsquota.metrics import NULL_COLLECTOR, MetricsCollector

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_MARKERS = (
    "database is locked",
    "deadlock",
    "lock timeout",
    "could not serialize",
    "serialization failure",
    "concurrent update",
)


class TransactionManager:
    """
    Executes units of work in database transactions.

    Features:
    - One transaction per attempt, committed on success
    - Rollback on any failure, including timeout and cancellation
    - Retry with exponential backoff on lock conflicts
    - Timeout per attempt

    Example:
        >>> async def work(session):
        ...     return await session.get(QuotaAccountRow, "IMP-001")
        >>> account = await manager.run("get_account", work)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 0.05,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Initialize transaction manager.

        Args:
            session_factory: Async session factory
            timeout: Seconds allowed for one attempt
            max_retries: Maximum retry attempts on lock conflict
            retry_delay: Base delay for exponential backoff in seconds
            metrics: Metrics collector for retry counts
        """
        self.session_factory = session_factory
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.metrics = metrics or NULL_COLLECTOR

    async def run(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        """
        Run ``work(session)`` in a transaction.

        Raises:
            StoreUnavailable: Timeout, connection failure, or lock conflicts
                that persisted through every retry
        """
        retry_count = 0
        while True:
            try:
                return await asyncio.wait_for(self._attempt(work), timeout=self.timeout)
            except asyncio.TimeoutError as e:
                logger.error("Transaction %s timed out after %.1fs", operation, self.timeout)
                raise StoreUnavailable(
                    f"{operation} timed out after {self.timeout}s",
                    operation=operation,
                    cause=e,
                ) from e
            except (OperationalError, InterfaceError) as e:
                if self._is_retryable_error(e) and retry_count < self.max_retries:
                    retry_count += 1
                    self.metrics.record_retry(operation)
                    logger.warning(
                        "Retrying transaction %s (attempt %d/%d): %s",
                        operation, retry_count, self.max_retries, e.orig,
                    )
                    await asyncio.sleep(self.retry_delay * (2 ** retry_count))
                    continue
                logger.error("Rolled back transaction %s: %s", operation, e)
                raise StoreUnavailable(
                    f"{operation} failed: {e.orig}",
                    operation=operation,
                    cause=e,
                ) from e
            except OSError as e:
                logger.error("Rolled back transaction %s: %s", operation, e)
                raise StoreUnavailable(
                    f"{operation} failed: {e}",
                    operation=operation,
                    cause=e,
                ) from e

    async def _attempt(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self.session_factory() as session:
            async with session.begin():
                return await work(session)

    @staticmethod
    def _is_retryable_error(error: DBAPIError) -> bool:
        """Check if error is a transient lock conflict"""
        message = str(error.orig if error.orig is not None else error).lower()
        return any(marker in message for marker in RETRYABLE_MARKERS)
