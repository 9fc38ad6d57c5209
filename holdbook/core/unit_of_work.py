from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from holdbook.infrastructure.repositories import (
        IBookingRepository,
        ICapacityRepository,
        IReservationRepository,
    )


class IUnitOfWork(ABC):
    """Unit of work grouping the repositories touched by one critical section.

    Leaving the context without ``commit()`` rolls every staged change back,
    so a failure half way through a confirm never leaves a reservation
    consumed without its booking.
    """

    capacity: ICapacityRepository
    reservations: IReservationRepository
    bookings: IBookingRepository

    def __init__(self):
        self._committed = False

    async def __aenter__(self) -> IUnitOfWork:
        self._committed = False
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if not self._committed:
            await self.rollback()

    async def commit(self):
        await self._commit()
        self._committed = True

    @abstractmethod
    async def _commit(self):
        ...

    @abstractmethod
    async def rollback(self):
        ...
