from __future__ import annotations

import logging

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from holdbook.core.exceptions import StoreUnavailableError
from holdbook.core.unit_of_work import IUnitOfWork
from holdbook.infrastructure.memory import InMemoryStorage, UndoLog
from holdbook.infrastructure.repositories import (
    BookingRepository,
    CapacityRepository,
    InMemoryBookingRepository,
    InMemoryCapacityRepository,
    InMemoryReservationRepository,
    ReservationRepository,
)

logger = logging.getLogger(__name__)

# Connection-level failures worth a retry; constraint errors are not among them
_TRANSIENT = (OperationalError, InterfaceError)


class SqlUnitOfWork(IUnitOfWork):
    """Unit of work for managing repository instances and one database transaction."""

    def __init__(self, session_factory: async_sessionmaker):
        super().__init__()
        self._session_factory = session_factory
        self.session: AsyncSession | None = None

    async def __aenter__(self) -> SqlUnitOfWork:
        await super().__aenter__()
        self.session = self._session_factory()
        self.capacity = CapacityRepository(self.session)
        self.reservations = ReservationRepository(self.session)
        self.bookings = BookingRepository(self.session)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        try:
            await super().__aexit__(exc_type, exc_val, exc_tb)
        finally:
            await self.session.close()
        if exc_type is not None and issubclass(exc_type, _TRANSIENT):
            raise StoreUnavailableError(str(exc_val)) from exc_val

    async def _commit(self):
        try:
            await self.session.commit()
        except _TRANSIENT as exc:
            raise StoreUnavailableError(str(exc)) from exc

    async def rollback(self):
        try:
            await self.session.rollback()
        except _TRANSIENT as exc:
            # The server drops the transaction with the connection anyway
            logger.warning("Rollback failed: %s", exc)


class InMemoryUnitOfWork(IUnitOfWork):
    """Unit of work over process memory; rollback replays the undo log."""

    def __init__(self, storage: InMemoryStorage):
        super().__init__()
        self._storage = storage
        self._undo = UndoLog()
        self.capacity = InMemoryCapacityRepository(storage, self._undo)
        self.reservations = InMemoryReservationRepository(storage, self._undo)
        self.bookings = InMemoryBookingRepository(storage, self._undo)

    async def _commit(self):
        self._undo.clear()

    async def rollback(self):
        self._undo.revert()
