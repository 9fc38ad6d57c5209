from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from holdbook.core import AuthorizationError, BaseService, ValidationError
from holdbook.core.exceptions import (
    BookingAlreadyCancelledError,
    BookingInPastError,
    BookingRedeemedError,
    InvalidBookingError,
    InvalidReservationError,
    ReferenceCollisionError,
    ResourceNotFoundError,
)
from holdbook.core.references import new_reference
from holdbook.domain import (
    AddonItem,
    Booking,
    BookingItem,
    BookingStatus,
    Product,
    Reservation,
    ReservationStatus,
    Ticket,
    TicketStatus,
    Traveler,
)
from holdbook.locks import capacity_key
from holdbook.services.availability_service import AvailabilityService, match_addon
from holdbook.services.notification_service import (
    BOOKING_CANCELLED,
    BOOKING_COMPLETED,
    BOOKING_CREATED,
    NotificationService,
)

logger = logging.getLogger(__name__)


def validate_addons(product: Product, addon_items: Sequence[AddonItem]) -> None:
    for addon in addon_items:
        match_addon(product, addon)


def issue_tickets(booking_ref: str, product: Product, items: Sequence[BookingItem], now: datetime) -> List[Ticket]:
    """One ticket per unit of count; a GROUP ticket stands for the whole group."""
    tickets = []
    for item in items:
        for _ in range(item.count):
            tickets.append(
                Ticket(
                    code=new_reference("TKT", now),
                    category=item.category,
                    ticket_code_type=product.ticket_code_type,
                    booking_ref=booking_ref,
                    group_size=item.group_size if item.is_group else None,
                )
            )
    return tickets


def _event(booking: Booking) -> Dict[str, Any]:
    return {
        "bookingReference": booking.reference,
        "reservationReference": booking.reservation_ref,
        "productId": booking.product_id,
        "dateTime": booking.date_time.isoformat(),
        "externalBookingRef": booking.external_booking_ref,
        "status": booking.status.value,
        "tickets": [
            {"category": t.category, "ticketCode": t.code, "status": t.status.value}
            for t in booking.tickets
        ],
        "travelers": [
            {"firstName": t.first_name, "lastName": t.last_name, "email": t.email}
            for t in booking.travelers
        ],
    }


class BookingService(BaseService):
    """Turns holds into bookings and tracks their tickets.

    Confirmation converts a reservation's debit into a booking without
    touching capacity; cancellation credits it back.
    """

    def __init__(self, uow_factory, locks, clock, settings, availability: AvailabilityService, notifications: NotificationService):
        super().__init__(uow_factory, locks, clock, settings)
        self.availability = availability
        self.notifications = notifications

    async def confirm(
        self,
        reservation_ref: str,
        external_booking_ref: str,
        addon_items: Sequence[AddonItem] = (),
        travelers: Sequence[Traveler] = (),
        *,
        product_id: Optional[str] = None,
        external_activity_ref: Optional[str] = None,
        currency: Optional[str] = None,
        language: str = "en",
        comment: Optional[str] = None,
    ) -> Booking:
        found: Optional[Reservation] = await self._read(lambda uow: uow.reservations.get(reservation_ref))
        if found is None or found.external_booking_ref != external_booking_ref:
            raise InvalidReservationError()
        if product_id is not None and found.product_id != product_id:
            raise InvalidReservationError()

        product = await self.availability.get_product(found.product_id)
        if currency is not None and currency.upper() != product.currency:
            raise ValidationError(f"Currency must be {product.currency} for this product", field="currency")
        addons = tuple(addon_items)
        validate_addons(product, addons)

        async def convert(uow) -> Booking:
            reservation = await uow.reservations.get(reservation_ref, for_update=True)
            now = self.clock.now()
            # Expiry is re-checked here, the sweep may not have run yet
            if reservation is None or not reservation.is_holding(now):
                raise InvalidReservationError()

            reference = new_reference("BK", now)
            tickets = issue_tickets(reference, product, reservation.booking_items, now)
            if await uow.bookings.existing_ticket_codes(t.code for t in tickets):
                raise ReferenceCollisionError(reference)

            reservation.status = ReservationStatus.CONFIRMED
            reservation.updated_at = now
            await uow.reservations.save(reservation)

            booking = Booking(
                reference=reference,
                product_id=reservation.product_id,
                reservation_ref=reservation.reference,
                external_booking_ref=external_booking_ref,
                external_activity_ref=external_activity_ref or reservation.external_activity_ref,
                date_time=reservation.date_time,
                currency=product.currency,
                booking_items=reservation.booking_items,
                addon_items=addons,
                travelers=tuple(travelers),
                tickets=tickets,
                status=BookingStatus.CONFIRMED,
                created_at=now,
                language=language,
                comment=comment,
            )
            await uow.bookings.add(booking)
            return booking

        key = capacity_key(found.product_id, found.day)
        booking = await self._with_fresh_references(lambda: self._atomically(key, convert))
        logger.info(
            "Reservation %s confirmed as booking %s with %s ticket(s)",
            reservation_ref, booking.reference, len(booking.tickets),
        )
        self.notifications.dispatch(BOOKING_CREATED, _event(booking))
        return booking

    async def get(self, booking_ref: str) -> Booking:
        booking = await self._read(lambda uow: uow.bookings.get(booking_ref))
        if booking is None:
            raise InvalidBookingError()
        return booking

    async def cancel(self, booking_ref: str, external_booking_ref: str, product_id: Optional[str] = None) -> Booking:
        found = await self._read(lambda uow: uow.bookings.get(booking_ref))
        if found is None or found.external_booking_ref != external_booking_ref:
            raise InvalidBookingError()
        if product_id is not None and found.product_id != product_id:
            raise InvalidBookingError()

        async def release(uow) -> Booking:
            booking = await uow.bookings.get(booking_ref, for_update=True)
            now = self.clock.now()
            if booking.status == BookingStatus.CANCELLED:
                raise BookingAlreadyCancelledError()
            if booking.date_time < now:
                raise BookingInPastError()
            if booking.has_redeemed_tickets:
                raise BookingRedeemedError()

            await uow.capacity.credit(booking.product_id, booking.day, booking.required_capacity)
            booking.status = BookingStatus.CANCELLED
            booking.cancelled_at = now
            for ticket in booking.tickets:
                ticket.status = TicketStatus.CANCELLED
            await uow.bookings.save(booking)
            return booking

        booking = await self._atomically(capacity_key(found.product_id, found.day), release)
        logger.info("Booking %s cancelled, %s released", booking_ref, booking.required_capacity)
        self.notifications.dispatch(BOOKING_CANCELLED, _event(booking))
        return booking

    def _redeem(self, booking: Booking, tickets: Sequence[Ticket], now: datetime) -> bool:
        """Mark *tickets* redeemed; True when that completed the booking"""
        for ticket in tickets:
            ticket.status = TicketStatus.REDEEMED
            ticket.redeemed_at = now
        if not booking.active_tickets and booking.status == BookingStatus.CONFIRMED:
            booking.status = BookingStatus.COMPLETED
            booking.completed_at = now
            return True
        return False

    async def redeem_ticket(self, code: str, external_booking_ref: str) -> Booking:
        found = await self._read(lambda uow: uow.bookings.get_by_ticket_code(code))
        if found is None:
            raise ResourceNotFoundError("Ticket not found")
        if found.external_booking_ref != external_booking_ref:
            raise AuthorizationError("Ticket does not belong to this booking")

        async def redeem(uow):
            booking = await uow.bookings.get(found.reference, for_update=True)
            ticket = booking.ticket(code)
            if ticket.status != TicketStatus.ACTIVE:
                raise ValidationError(f"Ticket is {ticket.status.value.lower()} and cannot be redeemed", field="ticketCode")
            completed = self._redeem(booking, [ticket], self.clock.now())
            await uow.bookings.save(booking)
            return booking, completed

        booking, completed = await self._atomically(capacity_key(found.product_id, found.day), redeem)
        logger.info("Ticket %s of booking %s redeemed", code, booking.reference)
        if completed:
            self.notifications.dispatch(BOOKING_COMPLETED, _event(booking))
        return booking

    async def redeem_booking(self, external_booking_ref: str) -> Booking:
        """Redeem every remaining ticket of the partner's booking as one batch"""
        found = await self._read(lambda uow: uow.bookings.get_by_external_ref(external_booking_ref))
        if found is None:
            raise ResourceNotFoundError("Booking not found")

        async def redeem(uow):
            booking = await uow.bookings.get(found.reference, for_update=True)
            remaining = booking.active_tickets
            if not remaining:
                raise ValidationError("Booking has no tickets left to redeem", field="externalBookingRef")
            completed = self._redeem(booking, remaining, self.clock.now())
            await uow.bookings.save(booking)
            return booking, completed

        booking, completed = await self._atomically(capacity_key(found.product_id, found.day), redeem)
        logger.info("Booking %s redeemed", booking.reference)
        if completed:
            self.notifications.dispatch(BOOKING_COMPLETED, _event(booking))
        return booking
