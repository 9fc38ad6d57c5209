from datetime import timedelta

import pytest

from holdbook.core import ValidationError
from holdbook.core.exceptions import (
    InvalidParticipantsError,
    InvalidProductError,
    InvalidReservationError,
    NoAvailabilityError,
)
from holdbook.domain import BookingItem, ReservationStatus
from tests.conftest import EXPERIENCE, NOW, adults


async def test_create_holds_capacity(reservations, vacancies):
    reservation = await reservations.create("tour", EXPERIENCE, adults(4), "ext-1", "act-9")

    assert reservation.reference.startswith("RES")
    assert reservation.status == ReservationStatus.ACTIVE
    assert reservation.created_at == NOW
    assert reservation.expires_at == NOW + timedelta(minutes=60)
    assert reservation.external_activity_ref == "act-9"
    assert await vacancies() == 6


async def test_references_are_unique(reservations):
    first = await reservations.create("tour", EXPERIENCE, adults(1), "ext-1")
    second = await reservations.create("tour", EXPERIENCE, adults(1), "ext-2")
    assert first.reference != second.reference


async def test_no_availability_leaves_capacity_untouched(reservations, vacancies):
    await reservations.create("tour", EXPERIENCE, adults(7), "ext-1")
    assert await vacancies() == 3

    with pytest.raises(NoAvailabilityError) as info:
        await reservations.create("tour", EXPERIENCE, adults(5), "ext-2")

    assert info.value.code.value == "NO_AVAILABILITY"
    assert await vacancies() == 3


async def test_no_availability_on_disabled_date(reservations):
    with pytest.raises(NoAvailabilityError):
        await reservations.create("tour", EXPERIENCE + timedelta(days=2), adults(1), "ext-1")


async def test_no_availability_inside_cutoff(reservations, clock):
    clock.set(EXPERIENCE - timedelta(minutes=10))
    with pytest.raises(NoAvailabilityError):
        await reservations.create("tour", EXPERIENCE, adults(1), "ext-1")


async def test_overbooking_allows_past_capacity(reservations, vacancies):
    await reservations.create("museum", EXPERIENCE, adults(7), "ext-1")
    assert await vacancies("museum") == 0


async def test_unknown_product(reservations):
    with pytest.raises(InvalidProductError):
        await reservations.create("nope", EXPERIENCE, adults(1), "ext-1")


async def test_zero_participants_echo_limits(reservations, vacancies):
    with pytest.raises(InvalidParticipantsError) as info:
        await reservations.create("small-group", EXPERIENCE, [BookingItem("ADULT", 0)], "ext-1")

    body = info.value.to_body()
    assert body["errorCode"] == "INVALID_PARTICIPANTS_CONFIGURATION"
    assert body["participantsConfiguration"] == {"min": 2, "max": 8}
    assert "groupConfiguration" not in body
    assert await vacancies("small-group") == 30


async def test_too_many_participants(reservations):
    with pytest.raises(InvalidParticipantsError) as info:
        await reservations.create("tour", EXPERIENCE, adults(11), "ext-1")
    assert info.value.to_body()["participantsConfiguration"] == {"min": 1, "max": 10}


async def test_every_group_violation_is_reported(reservations):
    items = [
        BookingItem("GROUP", 1, group_size=9),
        BookingItem("GROUP", 1, group_size=12),
        BookingItem("GROUP", 1, group_size=3),
    ]
    with pytest.raises(InvalidParticipantsError) as info:
        await reservations.create("small-group", EXPERIENCE, items, "ext-1")

    error = info.value
    assert len(error.violations) == 4
    assert "Group item 1" in error.message
    assert "Group item 2" in error.message
    assert "Maximum 2 groups" in error.message
    body = error.to_body()
    assert body["participantsConfiguration"] == {"min": 2, "max": 8}
    assert body["groupConfiguration"] == {"max": 2}


async def test_group_without_size_is_rejected(reservations):
    with pytest.raises(InvalidParticipantsError) as info:
        await reservations.create("small-group", EXPERIENCE, [BookingItem("GROUP", 1)], "ext-1")
    assert "missing a groupSize" in info.value.message


async def test_groups_consume_their_size(reservations, vacancies):
    await reservations.create("small-group", EXPERIENCE, [BookingItem("GROUP", 2, group_size=4)], "ext-1")
    assert await vacancies("small-group") == 22


async def test_cancel_releases_capacity(reservations, vacancies):
    reservation = await reservations.create("tour", EXPERIENCE, adults(4), "ext-1")

    cancelled = await reservations.cancel(reservation.reference, "ext-1")

    assert cancelled.status == ReservationStatus.CANCELLED
    assert await vacancies() == 10
    with pytest.raises(InvalidReservationError):
        await reservations.cancel(reservation.reference, "ext-1")
    assert await vacancies() == 10


async def test_cancel_requires_matching_partner_reference(reservations, vacancies):
    reservation = await reservations.create("tour", EXPERIENCE, adults(4), "ext-1")
    with pytest.raises(InvalidReservationError):
        await reservations.cancel(reservation.reference, "someone-else")
    with pytest.raises(InvalidReservationError):
        await reservations.cancel("RESMISSING", "ext-1")
    assert await vacancies() == 6


async def test_cancel_after_expiry_before_sweep(reservations, clock, vacancies):
    reservation = await reservations.create("tour", EXPERIENCE, adults(4), "ext-1")
    clock.advance(minutes=61)

    await reservations.cancel(reservation.reference, "ext-1")

    assert await vacancies() == 10
    # Nothing left for the sweep to release
    assert await reservations.expire_lapsed() == 0
    assert await vacancies() == 10


async def test_extend_pushes_expiry(reservations):
    reservation = await reservations.create("tour", EXPERIENCE, adults(1), "ext-1")

    extended = await reservations.extend(reservation.reference)
    assert extended.expires_at == NOW + timedelta(minutes=90)

    extended = await reservations.extend(reservation.reference, 45, external_booking_ref="ext-1")
    assert extended.expires_at == NOW + timedelta(minutes=135)


async def test_extend_is_capped_by_maximum_hold(reservations, clock):
    reservation = await reservations.create("tour", EXPERIENCE, adults(1), "ext-1")
    clock.advance(minutes=50)

    extended = await reservations.extend(reservation.reference, 500)

    assert extended.expires_at == NOW + timedelta(minutes=180)


async def test_extend_rejects_settled_or_lapsed_holds(reservations, clock):
    reservation = await reservations.create("tour", EXPERIENCE, adults(1), "ext-1")
    with pytest.raises(ValidationError):
        await reservations.extend(reservation.reference, 0)

    clock.advance(minutes=61)
    with pytest.raises(InvalidReservationError):
        await reservations.extend(reservation.reference, 10)


async def test_get_only_returns_live_holds(reservations, clock):
    reservation = await reservations.create("tour", EXPERIENCE, adults(2), "ext-1")
    assert (await reservations.get(reservation.reference)).reference == reservation.reference

    clock.advance(minutes=61)
    with pytest.raises(InvalidReservationError):
        await reservations.get(reservation.reference)


async def test_get_and_extend_check_partner_reference(reservations):
    reservation = await reservations.create("tour", EXPERIENCE, adults(2), "ext-1")

    assert (await reservations.get(reservation.reference, "ext-1")).external_booking_ref == "ext-1"
    with pytest.raises(InvalidReservationError):
        await reservations.get(reservation.reference, "someone-else")
    with pytest.raises(InvalidReservationError):
        await reservations.extend(reservation.reference, 10, external_booking_ref="someone-else")

    assert (await reservations.get(reservation.reference)).expires_at == NOW + timedelta(minutes=60)


async def test_stats(reservations, clock):
    first = await reservations.create("tour", EXPERIENCE, adults(1), "ext-1")
    await reservations.create("tour", EXPERIENCE, adults(1), "ext-2")
    clock.advance(minutes=20)
    await reservations.create("museum", EXPERIENCE, adults(1), "ext-3")
    await reservations.cancel(first.reference, "ext-1")

    stats = await reservations.stats()

    assert stats["total"] == 3
    assert stats["active"] == 2
    assert stats["lapsed"] == 0
    assert stats["byStatus"]["ACTIVE"] == 2
    assert stats["byStatus"]["CANCELLED"] == 1
    assert stats["averageHoldTime"] == 10
    assert stats["topProducts"] == {"tour": 2, "museum": 1}
