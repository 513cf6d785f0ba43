from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.errors import TransactionRetryExhaustedError
from ..domain.repositories import UnitOfWork
from .repositories import (
    SqlAlchemyEventRepository,
    SqlAlchemyReservationRepository,
    SqlAlchemySettingRepository,
    SqlAlchemySlotRepository,
    SqlAlchemyStaffRepository,
)

T = TypeVar("T")

logger = logging.getLogger(__name__)

# PostgreSQL serialization_failure / deadlock_detected
_SQLSTATE_RETRYABLE = {"40001", "40P01"}
# MySQL ER_LOCK_DEADLOCK / ER_LOCK_WAIT_TIMEOUT
_MYSQL_RETRYABLE = {1213, 1205}


def is_serialization_failure(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _SQLSTATE_RETRYABLE:
        return True
    args = getattr(orig, "args", ())
    if args and args[0] in _MYSQL_RETRYABLE:
        return True
    return isinstance(exc, OperationalError) and "database is locked" in str(orig).lower()


class SqlAlchemyUnitOfWork(UnitOfWork):
    """One AsyncSession, one transaction per `run` attempt."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        max_attempts: int = 3,
        backoff_seconds: float = 0.05,
    ) -> None:
        self.session = session
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.staff = SqlAlchemyStaffRepository(session)
        self.slots = SqlAlchemySlotRepository(session)
        self.reservations = SqlAlchemyReservationRepository(session)
        self.settings = SqlAlchemySettingRepository(session)
        self.events = SqlAlchemyEventRepository(session)

        bind = getattr(session, "bind", None)
        dialect = getattr(getattr(bind, "dialect", None), "name", "")
        # SQLite engines already BEGIN IMMEDIATE, which serializes writers.
        self._serializable_level = None if dialect in ("", "sqlite") else "SERIALIZABLE"

    async def run(self, work: Callable[[], Awaitable[T]], *, serializable: bool = False) -> T:
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with self.session.begin():
                    if serializable and self._serializable_level:
                        await self.session.connection(
                            execution_options={"isolation_level": self._serializable_level}
                        )
                    return await work()
            except DBAPIError as exc:
                if not is_serialization_failure(exc):
                    raise
                if attempt == self.max_attempts:
                    logger.error("transaction gave up after %d attempts: %s", attempt, exc.orig)
                    raise TransactionRetryExhaustedError() from exc
                logger.warning(
                    "serialization failure (attempt %d/%d), retrying: %s",
                    attempt,
                    self.max_attempts,
                    exc.orig,
                )
                await asyncio.sleep(self.backoff_seconds * attempt)
        raise TransactionRetryExhaustedError()
