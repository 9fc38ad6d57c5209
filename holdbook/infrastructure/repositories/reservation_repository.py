from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from holdbook.core import BaseRepository
from holdbook.core.clock import ensure_utc
from holdbook.core.exceptions import ReferenceCollisionError
from holdbook.domain import BookingItem, Reservation, ReservationStatus
from holdbook.infrastructure.memory import InMemoryStorage, UndoLog, detached
from holdbook.models import ReservationRow


def items_to_json(items: Iterable[BookingItem]) -> List[Dict[str, Any]]:
    return [
        {"category": item.category, "count": item.count, "groupSize": item.group_size}
        for item in items
    ]


def items_from_json(raw: Iterable[Dict[str, Any]]) -> Tuple[BookingItem, ...]:
    return tuple(
        BookingItem(category=entry["category"], count=entry["count"], group_size=entry.get("groupSize"))
        for entry in raw
    )


def optional_utc(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


class IReservationRepository(ABC):
    """Reservation holds"""

    @abstractmethod
    async def get(self, reference: str, *, for_update: bool = False) -> Optional[Reservation]:
        """*for_update* locks the row until the unit of work ends"""
        ...

    @abstractmethod
    async def add(self, reservation: Reservation) -> Reservation:
        """Insert a new hold; ReferenceCollisionError if the reference exists"""
        ...

    @abstractmethod
    async def save(self, reservation: Reservation) -> Reservation:
        ...

    @abstractmethod
    async def list_expired(self, now: datetime, *, limit: int = 500) -> List[Reservation]:
        """ACTIVE holds whose expiry lies strictly before *now*, oldest first"""
        ...

    @abstractmethod
    async def list_all(self) -> List[Reservation]:
        ...


class ReservationRepository(BaseRepository[ReservationRow], IReservationRepository):
    """Reservation repository implementation"""

    def __init__(self, session: AsyncSession):
        super().__init__(ReservationRow, session)

    @staticmethod
    def _to_domain(row: ReservationRow) -> Reservation:
        return Reservation(
            reference=row.reference,
            product_id=row.product_id,
            date_time=ensure_utc(row.date_time),
            booking_items=items_from_json(row.booking_items),
            external_booking_ref=row.external_booking_ref,
            external_activity_ref=row.external_activity_ref,
            status=ReservationStatus(row.status),
            created_at=ensure_utc(row.created_at),
            expires_at=ensure_utc(row.expires_at),
            updated_at=ensure_utc(row.updated_at),
        )

    async def get(self, reference: str, *, for_update: bool = False) -> Optional[Reservation]:
        row = await self.get_row(reference, for_update=for_update)
        return self._to_domain(row) if row else None

    async def add(self, reservation: Reservation) -> Reservation:
        row = ReservationRow(
            reference=reservation.reference,
            product_id=reservation.product_id,
            date_time=reservation.date_time,
            booking_items=items_to_json(reservation.booking_items),
            external_booking_ref=reservation.external_booking_ref,
            external_activity_ref=reservation.external_activity_ref,
            status=reservation.status.value,
            created_at=reservation.created_at,
            expires_at=reservation.expires_at,
            updated_at=reservation.updated_at,
        )
        try:
            await self.add_row(row)
        except IntegrityError as exc:
            raise ReferenceCollisionError(reservation.reference) from exc
        return reservation

    async def save(self, reservation: Reservation) -> Reservation:
        row = await self.get_row(reservation.reference, for_update=True)
        if row is None:
            raise LookupError(reservation.reference)
        row.status = reservation.status.value
        row.expires_at = reservation.expires_at
        row.updated_at = reservation.updated_at
        await self.session.flush()
        return reservation

    async def list_expired(self, now: datetime, *, limit: int = 500) -> List[Reservation]:
        query = (
            select(ReservationRow)
            .where(
                ReservationRow.status == ReservationStatus.ACTIVE.value,
                ReservationRow.expires_at < now,
            )
            .order_by(ReservationRow.expires_at)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def list_all(self) -> List[Reservation]:
        result = await self.session.execute(select(ReservationRow).order_by(ReservationRow.created_at))
        return [self._to_domain(row) for row in result.scalars().all()]


class InMemoryReservationRepository(IReservationRepository):

    def __init__(self, storage: InMemoryStorage, undo: UndoLog):
        self._storage = storage
        self._undo = undo

    async def get(self, reference: str, *, for_update: bool = False) -> Optional[Reservation]:
        reservation = self._storage.reservations.get(reference)
        return detached(reservation) if reservation else None

    async def add(self, reservation: Reservation) -> Reservation:
        if reservation.reference in self._storage.reservations:
            raise ReferenceCollisionError(reservation.reference)
        self._undo.put(self._storage.reservations, reservation.reference, detached(reservation))
        return reservation

    async def save(self, reservation: Reservation) -> Reservation:
        if reservation.reference not in self._storage.reservations:
            raise LookupError(reservation.reference)
        self._undo.put(self._storage.reservations, reservation.reference, detached(reservation))
        return reservation

    async def list_expired(self, now: datetime, *, limit: int = 500) -> List[Reservation]:
        lapsed = [
            r for r in self._storage.reservations.values()
            if r.status == ReservationStatus.ACTIVE and r.is_expired(now)
        ]
        lapsed.sort(key=lambda r: r.expires_at)
        return [detached(r) for r in lapsed[:limit]]

    async def list_all(self) -> List[Reservation]:
        return [detached(r) for r in sorted(self._storage.reservations.values(), key=lambda r: r.created_at)]
