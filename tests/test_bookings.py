from datetime import timedelta

import pytest

from holdbook.core import AuthorizationError, SystemFailure, ValidationError
from holdbook.core.exceptions import (
    BookingAlreadyCancelledError,
    BookingInPastError,
    BookingRedeemedError,
    InvalidAddonsError,
    InvalidBookingError,
    InvalidReservationError,
    ResourceNotFoundError,
)
from holdbook.core.references import new_reference
from holdbook.domain import (
    AddonItem,
    BookingItem,
    BookingStatus,
    ReservationStatus,
    TicketStatus,
    Traveler,
)
from holdbook.services import booking_service
from tests.conftest import EXPERIENCE, NOW, adults


@pytest.fixture
async def booked(reservations, bookings):
    reservation = await reservations.create("tour", EXPERIENCE, adults(4), "ext-1")
    return await bookings.confirm(
        reservation.reference,
        "ext-1",
        travelers=[Traveler("Ada", "Lovelace", "ada@example.com")],
        product_id="tour",
    )


async def test_confirm_issues_tickets_without_touching_capacity(booked, storage, vacancies):
    assert booked.reference.startswith("BK")
    assert booked.status == BookingStatus.CONFIRMED
    assert booked.currency == "AED"
    assert len(booked.tickets) == 4
    assert all(t.status == TicketStatus.ACTIVE for t in booked.tickets)
    assert all(t.code.startswith("TKT") for t in booked.tickets)
    assert len({t.code for t in booked.tickets}) == 4
    assert storage.reservations[booked.reservation_ref].status == ReservationStatus.CONFIRMED
    assert await vacancies() == 6


async def test_confirm_twice_is_rejected(booked, bookings):
    with pytest.raises(InvalidReservationError):
        await bookings.confirm(booked.reservation_ref, "ext-1")


async def test_confirm_after_ttl(reservations, bookings, clock, vacancies):
    reservation = await reservations.create("tour", EXPERIENCE, adults(4), "ext-1")
    clock.advance(minutes=61)

    with pytest.raises(InvalidReservationError):
        await bookings.confirm(reservation.reference, "ext-1")
    assert await vacancies() == 6


@pytest.mark.parametrize(
    "kwargs",
    [
        {"external_booking_ref": "other"},
        {"external_booking_ref": "ext-1", "product_id": "museum"},
    ],
)
async def test_confirm_requires_matching_references(reservations, bookings, kwargs):
    reservation = await reservations.create("tour", EXPERIENCE, adults(1), "ext-1")
    with pytest.raises(InvalidReservationError):
        await bookings.confirm(reservation.reference, **kwargs)


async def test_confirm_checks_currency(reservations, bookings):
    reservation = await reservations.create("tour", EXPERIENCE, adults(1), "ext-1")
    with pytest.raises(ValidationError):
        await bookings.confirm(reservation.reference, "ext-1", currency="EUR")
    booking = await bookings.confirm(reservation.reference, "ext-1", currency="aed")
    assert booking.currency == "AED"


async def test_addons(reservations, bookings):
    reservation = await reservations.create("tour", EXPERIENCE, adults(1), "ext-1")
    with pytest.raises(InvalidAddonsError):
        await bookings.confirm(reservation.reference, "ext-1", [AddonItem("SPA")])
    with pytest.raises(InvalidAddonsError):
        await bookings.confirm(reservation.reference, "ext-1", [AddonItem("FOOD", "Lunch")])

    booking = await bookings.confirm(
        reservation.reference, "ext-1", [AddonItem("FOOD", "Dinner buffet"), AddonItem("TRANSFER")]
    )
    assert [a.addon_type for a in booking.addon_items] == ["FOOD", "TRANSFER"]


async def test_group_items_get_one_ticket_per_group(reservations, bookings):
    reservation = await reservations.create(
        "small-group", EXPERIENCE, [BookingItem("GROUP", 2, group_size=3)], "ext-1"
    )
    booking = await bookings.confirm(reservation.reference, "ext-1")
    assert [(t.category, t.group_size) for t in booking.tickets] == [("GROUP", 3), ("GROUP", 3)]


async def test_ticket_code_collision_is_retried(booked, reservations, bookings, monkeypatch):
    taken = booked.tickets[0].code
    codes = iter([taken])

    def colliding(prefix, now):
        if prefix == "TKT":
            return next(codes, None) or new_reference(prefix, now)
        return new_reference(prefix, now)

    monkeypatch.setattr(booking_service, "new_reference", colliding)
    reservation = await reservations.create("tour", EXPERIENCE, adults(1), "ext-2")

    booking = await bookings.confirm(reservation.reference, "ext-2")

    assert booking.tickets[0].code != taken


async def test_exhausted_ticket_codes_leave_reservation_active(
    booked, reservations, bookings, monkeypatch, storage, vacancies
):
    taken = booked.tickets[0].code
    monkeypatch.setattr(
        booking_service,
        "new_reference",
        lambda prefix, now: taken if prefix == "TKT" else new_reference(prefix, now),
    )
    reservation = await reservations.create("tour", EXPERIENCE, adults(1), "ext-2")

    with pytest.raises(SystemFailure):
        await bookings.confirm(reservation.reference, "ext-2")

    assert storage.reservations[reservation.reference].status == ReservationStatus.ACTIVE
    assert len(storage.bookings) == 1
    assert await vacancies() == 5


async def test_redeeming_every_ticket_completes_booking(booked, bookings):
    codes = [t.code for t in booked.tickets]
    for code in codes[:-1]:
        booking = await bookings.redeem_ticket(code, "ext-1")
        assert booking.status == BookingStatus.CONFIRMED

    booking = await bookings.redeem_ticket(codes[-1], "ext-1")

    assert booking.status == BookingStatus.COMPLETED
    assert booking.completed_at == NOW
    assert all(t.status == TicketStatus.REDEEMED for t in booking.tickets)


async def test_redeem_ticket_errors(booked, bookings):
    code = booked.tickets[0].code
    with pytest.raises(ResourceNotFoundError):
        await bookings.redeem_ticket("TKTUNKNOWN", "ext-1")
    with pytest.raises(AuthorizationError):
        await bookings.redeem_ticket(code, "someone-else")

    await bookings.redeem_ticket(code, "ext-1")
    with pytest.raises(ValidationError):
        await bookings.redeem_ticket(code, "ext-1")


async def test_redeem_booking(booked, bookings):
    await bookings.redeem_ticket(booked.tickets[0].code, "ext-1")

    booking = await bookings.redeem_booking("ext-1")

    assert booking.reference == booked.reference
    assert booking.status == BookingStatus.COMPLETED
    with pytest.raises(ValidationError):
        await bookings.redeem_booking("ext-1")
    with pytest.raises(ResourceNotFoundError):
        await bookings.redeem_booking("unknown")


async def test_cancel_credits_capacity_and_tickets(booked, bookings, clock, vacancies):
    clock.set(EXPERIENCE - timedelta(days=2))

    booking = await bookings.cancel(booked.reference, "ext-1", product_id="tour")

    assert booking.status == BookingStatus.CANCELLED
    assert booking.cancelled_at == EXPERIENCE - timedelta(days=2)
    assert all(t.status == TicketStatus.CANCELLED for t in booking.tickets)
    assert await vacancies() == 10
    assert (await bookings.get(booked.reference)).status == BookingStatus.CANCELLED


async def test_cancel_twice(booked, bookings, vacancies):
    await bookings.cancel(booked.reference, "ext-1")
    with pytest.raises(BookingAlreadyCancelledError):
        await bookings.cancel(booked.reference, "ext-1")
    assert await vacancies() == 10


async def test_cancel_in_past(booked, bookings, clock, vacancies):
    clock.set(EXPERIENCE + timedelta(hours=1))
    with pytest.raises(BookingInPastError):
        await bookings.cancel(booked.reference, "ext-1")
    assert (await bookings.get(booked.reference)).status == BookingStatus.CONFIRMED


async def test_cancel_after_redemption(booked, bookings, vacancies):
    await bookings.redeem_ticket(booked.tickets[0].code, "ext-1")
    with pytest.raises(BookingRedeemedError):
        await bookings.cancel(booked.reference, "ext-1")
    assert await vacancies() == 6


async def test_cancel_unknown_or_foreign_booking(booked, bookings):
    with pytest.raises(InvalidBookingError):
        await bookings.cancel("BKMISSING", "ext-1")
    with pytest.raises(InvalidBookingError):
        await bookings.cancel(booked.reference, "someone-else")
    with pytest.raises(InvalidBookingError):
        await bookings.cancel(booked.reference, "ext-1", product_id="museum")
    with pytest.raises(InvalidBookingError):
        await bookings.get("BKMISSING")
