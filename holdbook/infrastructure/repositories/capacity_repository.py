import logging
from abc import ABC, abstractmethod
from datetime import date, timedelta
from typing import Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from holdbook.core import BaseRepository
from holdbook.core.exceptions import CapacityExceededError, StoreUnavailableError
from holdbook.domain import CapacityCounter
from holdbook.infrastructure.memory import InMemoryStorage, UndoLog, detached
from holdbook.locks import capacity_key
from holdbook.models import CapacityCounterRow

logger = logging.getLogger(__name__)


class ICapacityRepository(ABC):
    """Committed-capacity counters per (product, date).

    Absent counters read as zero committed units and no override.
    """

    @abstractmethod
    async def get_counter(self, product_id: str, day: date) -> CapacityCounter:
        ...

    @abstractmethod
    async def get_counters(self, product_id: str, from_day: date, to_day: date) -> Dict[date, CapacityCounter]:
        """Counters for every day in the inclusive range"""
        ...

    @abstractmethod
    async def debit(self, product_id: str, day: date, units: int, limit: int) -> CapacityCounter:
        """Commit *units* more, refusing to pass *limit* (CapacityExceededError)"""
        ...

    @abstractmethod
    async def credit(self, product_id: str, day: date, units: int) -> CapacityCounter:
        ...

    @abstractmethod
    async def set_capacity_override(self, product_id: str, day: date, capacity: Optional[int]) -> CapacityCounter:
        ...


def _days(from_day: date, to_day: date):
    day = from_day
    while day <= to_day:
        yield day
        day += timedelta(days=1)


def _released(product_id: str, day: date, committed: int, units: int) -> int:
    remaining = committed - units
    if remaining < 0:
        logger.error(
            "Credit of %s on %s would drop committed capacity below zero (was %s)",
            units, capacity_key(product_id, day), committed,
        )
        return 0
    return remaining


class CapacityRepository(BaseRepository[CapacityCounterRow], ICapacityRepository):
    """SQL capacity counters; debit is a conditional UPDATE"""

    def __init__(self, session: AsyncSession):
        super().__init__(CapacityCounterRow, session)

    @staticmethod
    def _to_domain(row: CapacityCounterRow) -> CapacityCounter:
        return CapacityCounter(
            product_id=row.product_id,
            day=row.day,
            committed=row.committed,
            capacity_override=row.capacity_override,
        )

    async def _get_or_create(self, product_id: str, day: date) -> CapacityCounterRow:
        row = await self.get_row((product_id, day), for_update=True)
        if row is not None:
            return row
        try:
            row = await self.add_row(CapacityCounterRow(product_id=product_id, day=day, committed=0))
        except IntegrityError as exc:
            # Another worker created the counter first; the whole unit is re-run
            raise StoreUnavailableError(
                f"counter {capacity_key(product_id, day)} created concurrently"
            ) from exc
        return row

    async def get_counter(self, product_id: str, day: date) -> CapacityCounter:
        row = await self.get_row((product_id, day))
        if row is None:
            return CapacityCounter(product_id=product_id, day=day)
        return self._to_domain(row)

    async def get_counters(self, product_id: str, from_day: date, to_day: date) -> Dict[date, CapacityCounter]:
        query = (
            select(CapacityCounterRow)
            .where(
                CapacityCounterRow.product_id == product_id,
                CapacityCounterRow.day >= from_day,
                CapacityCounterRow.day <= to_day,
            )
        )
        result = await self.session.execute(query)
        stored = {row.day: self._to_domain(row) for row in result.scalars().all()}
        return {
            day: stored.get(day) or CapacityCounter(product_id=product_id, day=day)
            for day in _days(from_day, to_day)
        }

    async def debit(self, product_id: str, day: date, units: int, limit: int) -> CapacityCounter:
        row = await self._get_or_create(product_id, day)
        result = await self.session.execute(
            update(CapacityCounterRow)
            .where(
                CapacityCounterRow.product_id == product_id,
                CapacityCounterRow.day == day,
                CapacityCounterRow.committed + units <= limit,
            )
            .values(committed=CapacityCounterRow.committed + units)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(row)
        if result.rowcount == 0:
            raise CapacityExceededError(capacity_key(product_id, day), units, row.committed, limit)
        return self._to_domain(row)

    async def credit(self, product_id: str, day: date, units: int) -> CapacityCounter:
        row = await self._get_or_create(product_id, day)
        row.committed = _released(product_id, day, row.committed, units)
        await self.session.flush()
        return self._to_domain(row)

    async def set_capacity_override(self, product_id: str, day: date, capacity: Optional[int]) -> CapacityCounter:
        row = await self._get_or_create(product_id, day)
        row.capacity_override = capacity
        await self.session.flush()
        return self._to_domain(row)


class InMemoryCapacityRepository(ICapacityRepository):

    def __init__(self, storage: InMemoryStorage, undo: UndoLog):
        self._storage = storage
        self._undo = undo

    def _current(self, product_id: str, day: date) -> CapacityCounter:
        counter = self._storage.counters.get((product_id, day))
        return detached(counter) if counter else CapacityCounter(product_id=product_id, day=day)

    def _store(self, counter: CapacityCounter) -> CapacityCounter:
        self._undo.put(self._storage.counters, (counter.product_id, counter.day), counter)
        return detached(counter)

    async def get_counter(self, product_id: str, day: date) -> CapacityCounter:
        return self._current(product_id, day)

    async def get_counters(self, product_id: str, from_day: date, to_day: date) -> Dict[date, CapacityCounter]:
        return {day: self._current(product_id, day) for day in _days(from_day, to_day)}

    async def debit(self, product_id: str, day: date, units: int, limit: int) -> CapacityCounter:
        counter = self._current(product_id, day)
        if counter.committed + units > limit:
            raise CapacityExceededError(capacity_key(product_id, day), units, counter.committed, limit)
        counter.committed += units
        return self._store(counter)

    async def credit(self, product_id: str, day: date, units: int) -> CapacityCounter:
        counter = self._current(product_id, day)
        counter.committed = _released(product_id, day, counter.committed, units)
        return self._store(counter)

    async def set_capacity_override(self, product_id: str, day: date, capacity: Optional[int]) -> CapacityCounter:
        counter = self._current(product_id, day)
        counter.capacity_override = capacity
        return self._store(counter)
