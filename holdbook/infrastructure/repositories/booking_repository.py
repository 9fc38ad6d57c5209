from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from holdbook.core import BaseRepository
from holdbook.core.clock import ensure_utc
from holdbook.core.exceptions import ReferenceCollisionError
from holdbook.domain import (
    AddonItem,
    Booking,
    BookingStatus,
    Ticket,
    TicketStatus,
    Traveler,
)
from holdbook.infrastructure.memory import InMemoryStorage, UndoLog, detached
from holdbook.infrastructure.repositories.reservation_repository import (
    optional_utc,
    items_from_json,
    items_to_json,
)
from holdbook.models import BookingRow, TicketRow


class IBookingRepository(ABC):
    """Bookings together with their tickets"""

    @abstractmethod
    async def get(self, reference: str, *, for_update: bool = False) -> Optional[Booking]:
        """*for_update* locks the booking row until the unit of work ends"""
        ...

    @abstractmethod
    async def get_by_external_ref(self, external_booking_ref: str) -> Optional[Booking]:
        """Most recent booking carrying the partner's booking reference"""
        ...

    @abstractmethod
    async def get_by_ticket_code(self, code: str) -> Optional[Booking]:
        ...

    @abstractmethod
    async def existing_ticket_codes(self, codes: Iterable[str]) -> Set[str]:
        ...

    @abstractmethod
    async def add(self, booking: Booking) -> Booking:
        """Insert booking and tickets; ReferenceCollisionError on any duplicate"""
        ...

    @abstractmethod
    async def save(self, booking: Booking) -> Booking:
        """Persist status changes of the booking and its tickets"""
        ...


class BookingRepository(BaseRepository[BookingRow], IBookingRepository):
    """Booking repository implementation"""

    def __init__(self, session: AsyncSession):
        super().__init__(BookingRow, session)

    @staticmethod
    def _to_domain(row: BookingRow) -> Booking:
        return Booking(
            reference=row.reference,
            product_id=row.product_id,
            reservation_ref=row.reservation_ref,
            external_booking_ref=row.external_booking_ref,
            external_activity_ref=row.external_activity_ref,
            date_time=ensure_utc(row.date_time),
            currency=row.currency,
            language=row.language,
            comment=row.comment,
            booking_items=items_from_json(row.booking_items),
            addon_items=tuple(
                AddonItem(addon_type=a["addonType"], addon_description=a.get("addonDescription"))
                for a in row.addon_items or []
            ),
            travelers=tuple(
                Traveler(
                    first_name=t["firstName"],
                    last_name=t["lastName"],
                    email=t.get("email"),
                    phone_number=t.get("phoneNumber"),
                )
                for t in row.travelers or []
            ),
            tickets=[
                Ticket(
                    code=t.code,
                    category=t.category,
                    ticket_code_type=t.ticket_code_type,
                    booking_ref=t.booking_ref,
                    status=TicketStatus(t.status),
                    group_size=t.group_size,
                    redeemed_at=optional_utc(t.redeemed_at),
                )
                for t in row.tickets
            ],
            status=BookingStatus(row.status),
            created_at=ensure_utc(row.created_at),
            cancelled_at=optional_utc(row.cancelled_at),
            completed_at=optional_utc(row.completed_at),
        )

    def _query(self):
        return select(BookingRow).options(selectinload(BookingRow.tickets))

    async def _get_loaded(self, reference: str, *, for_update: bool = False) -> Optional[BookingRow]:
        query = self._query().where(BookingRow.reference == reference)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get(self, reference: str, *, for_update: bool = False) -> Optional[Booking]:
        row = await self._get_loaded(reference, for_update=for_update)
        return self._to_domain(row) if row else None

    async def get_by_external_ref(self, external_booking_ref: str) -> Optional[Booking]:
        query = (
            self._query()
            .where(BookingRow.external_booking_ref == external_booking_ref)
            .order_by(BookingRow.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(query)
        row = result.scalar_one_or_none()
        return self._to_domain(row) if row else None

    async def get_by_ticket_code(self, code: str) -> Optional[Booking]:
        booking_ref = await self.session.scalar(
            select(TicketRow.booking_ref).where(TicketRow.code == code)
        )
        if booking_ref is None:
            return None
        return await self.get(booking_ref)

    async def existing_ticket_codes(self, codes: Iterable[str]) -> Set[str]:
        codes = list(codes)
        if not codes:
            return set()
        result = await self.session.execute(select(TicketRow.code).where(TicketRow.code.in_(codes)))
        return set(result.scalars().all())

    async def add(self, booking: Booking) -> Booking:
        row = BookingRow(
            reference=booking.reference,
            product_id=booking.product_id,
            reservation_ref=booking.reservation_ref,
            external_booking_ref=booking.external_booking_ref,
            external_activity_ref=booking.external_activity_ref,
            date_time=booking.date_time,
            currency=booking.currency,
            language=booking.language,
            comment=booking.comment,
            booking_items=items_to_json(booking.booking_items),
            addon_items=[
                {"addonType": a.addon_type, "addonDescription": a.addon_description}
                for a in booking.addon_items
            ],
            travelers=[
                {
                    "firstName": t.first_name,
                    "lastName": t.last_name,
                    "email": t.email,
                    "phoneNumber": t.phone_number,
                }
                for t in booking.travelers
            ],
            status=booking.status.value,
            created_at=booking.created_at,
            cancelled_at=booking.cancelled_at,
            completed_at=booking.completed_at,
            tickets=[
                TicketRow(
                    code=t.code,
                    position=position,
                    category=t.category,
                    ticket_code_type=t.ticket_code_type,
                    group_size=t.group_size,
                    status=t.status.value,
                    redeemed_at=t.redeemed_at,
                )
                for position, t in enumerate(booking.tickets)
            ],
        )
        try:
            await self.add_row(row)
        except IntegrityError as exc:
            raise ReferenceCollisionError(booking.reference) from exc
        return booking

    async def save(self, booking: Booking) -> Booking:
        row = await self._get_loaded(booking.reference, for_update=True)
        if row is None:
            raise LookupError(booking.reference)
        row.status = booking.status.value
        row.cancelled_at = booking.cancelled_at
        row.completed_at = booking.completed_at
        by_code = {t.code: t for t in booking.tickets}
        for ticket_row in row.tickets:
            ticket = by_code.get(ticket_row.code)
            if ticket is not None:
                ticket_row.status = ticket.status.value
                ticket_row.redeemed_at = ticket.redeemed_at
        await self.session.flush()
        return booking


class InMemoryBookingRepository(IBookingRepository):

    def __init__(self, storage: InMemoryStorage, undo: UndoLog):
        self._storage = storage
        self._undo = undo

    async def get(self, reference: str, *, for_update: bool = False) -> Optional[Booking]:
        booking = self._storage.bookings.get(reference)
        return detached(booking) if booking else None

    async def get_by_external_ref(self, external_booking_ref: str) -> Optional[Booking]:
        matches: List[Booking] = [
            b for b in self._storage.bookings.values()
            if b.external_booking_ref == external_booking_ref
        ]
        if not matches:
            return None
        return detached(max(matches, key=lambda b: b.created_at))

    async def get_by_ticket_code(self, code: str) -> Optional[Booking]:
        booking_ref = self._storage.ticket_index.get(code)
        return await self.get(booking_ref) if booking_ref else None

    async def existing_ticket_codes(self, codes: Iterable[str]) -> Set[str]:
        return {code for code in codes if code in self._storage.ticket_index}

    async def add(self, booking: Booking) -> Booking:
        codes = [t.code for t in booking.tickets]
        if (
            booking.reference in self._storage.bookings
            or len(set(codes)) != len(codes)
            or any(code in self._storage.ticket_index for code in codes)
        ):
            raise ReferenceCollisionError(booking.reference)
        self._undo.put(self._storage.bookings, booking.reference, detached(booking))
        for code in codes:
            self._undo.put(self._storage.ticket_index, code, booking.reference)
        return booking

    async def save(self, booking: Booking) -> Booking:
        if booking.reference not in self._storage.bookings:
            raise LookupError(booking.reference)
        self._undo.put(self._storage.bookings, booking.reference, detached(booking))
        return booking
