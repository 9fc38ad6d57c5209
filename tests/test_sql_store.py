from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from holdbook.core import SystemFailure
from holdbook.core.exceptions import CapacityExceededError, NoAvailabilityError
from holdbook.core.references import new_reference
from holdbook.deps import build_container
from holdbook.domain import BookingStatus, ReservationStatus, TicketStatus
from holdbook.infrastructure import create_tables
from holdbook.infrastructure.repositories import BookingRepository, ReservationRepository
from holdbook.services import booking_service
from tests.conftest import EXPERIENCE, adults


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sql_container(settings, clock, catalog, engine):
    return build_container(settings, clock=clock, catalog=catalog, engine=engine)


@pytest.fixture
def sql_vacancies(sql_container):
    async def _vacancies(product_id="tour", when=EXPERIENCE):
        [snapshot] = await sql_container.availability.get_availabilities(product_id, when, when)
        return snapshot.vacancies

    return _vacancies


async def test_conditional_debit(sql_container):
    day = EXPERIENCE.date()
    async with sql_container.uow_factory() as uow:
        await uow.capacity.debit("tour", day, 8, limit=10)
        await uow.commit()

    async with sql_container.uow_factory() as uow:
        with pytest.raises(CapacityExceededError):
            await uow.capacity.debit("tour", day, 3, limit=10)

    async with sql_container.uow_factory() as uow:
        assert (await uow.capacity.get_counter("tour", day)).committed == 8


async def test_reserve_confirm_redeem(sql_container, sql_vacancies):
    reservations, bookings = sql_container.reservations, sql_container.bookings

    reservation = await reservations.create("tour", EXPERIENCE, adults(4), "ext-1")
    assert await sql_vacancies() == 6
    assert (await reservations.get(reservation.reference)).date_time == EXPERIENCE

    booking = await bookings.confirm(reservation.reference, "ext-1")
    assert await sql_vacancies() == 6
    assert [t.status for t in booking.tickets] == [TicketStatus.ACTIVE] * 4

    for ticket in booking.tickets:
        booking = await bookings.redeem_ticket(ticket.code, "ext-1")
    assert booking.status == BookingStatus.COMPLETED
    assert (await bookings.get(booking.reference)).status == BookingStatus.COMPLETED


async def test_no_availability(sql_container, sql_vacancies):
    await sql_container.reservations.create("tour", EXPERIENCE, adults(7), "ext-1")
    with pytest.raises(NoAvailabilityError):
        await sql_container.reservations.create("tour", EXPERIENCE, adults(5), "ext-2")
    assert await sql_vacancies() == 3


async def test_sweep_and_cancel(sql_container, sql_vacancies, clock):
    reservations, bookings = sql_container.reservations, sql_container.bookings
    lapsing = await reservations.create("tour", EXPERIENCE, adults(4), "ext-1")
    kept = await reservations.create("tour", EXPERIENCE, adults(2), "ext-2")
    booking = await bookings.confirm(kept.reference, "ext-2")

    clock.advance(minutes=61)
    assert await sql_container.sweeper.run_once() == 1
    assert await sql_vacancies() == 8

    async with sql_container.uow_factory() as uow:
        assert (await uow.reservations.get(lapsing.reference)).status == ReservationStatus.EXPIRED

    cancelled = await bookings.cancel(booking.reference, "ext-2")
    assert cancelled.status == BookingStatus.CANCELLED
    assert all(t.status == TicketStatus.CANCELLED for t in cancelled.tickets)
    assert await sql_vacancies() == 10


async def test_notify_override_is_persisted(sql_container, sql_vacancies):
    await sql_container.reservations.create("tour", EXPERIENCE, adults(3), "ext-1")
    await sql_container.availability.notify("tour", [{"date_time": EXPERIENCE, "vacancies": 4}])
    assert await sql_vacancies() == 4


async def test_ticket_code_collision_rolls_back(sql_container, sql_vacancies, monkeypatch):
    reservations, bookings = sql_container.reservations, sql_container.bookings
    first = await reservations.create("tour", EXPERIENCE, adults(1), "ext-1")
    taken = (await bookings.confirm(first.reference, "ext-1")).tickets[0].code

    monkeypatch.setattr(
        booking_service,
        "new_reference",
        lambda prefix, now: taken if prefix == "TKT" else new_reference(prefix, now),
    )
    second = await reservations.create("tour", EXPERIENCE, adults(1), "ext-2")
    with pytest.raises(SystemFailure):
        await bookings.confirm(second.reference, "ext-2")

    async with sql_container.uow_factory() as uow:
        assert (await uow.reservations.get(second.reference)).status == ReservationStatus.ACTIVE
    assert await sql_vacancies() == 8


async def test_latest_booking_wins_for_external_ref(sql_container, clock):
    reservations, bookings = sql_container.reservations, sql_container.bookings
    older = await reservations.create("tour", EXPERIENCE, adults(1), "ext-1")
    await bookings.confirm(older.reference, "ext-1")
    clock.advance(minutes=5)
    newer = await reservations.create("tour", EXPERIENCE + timedelta(days=1), adults(2), "ext-1")
    latest = await bookings.confirm(newer.reference, "ext-1")

    redeemed = await bookings.redeem_booking("ext-1")

    assert redeemed.reference == latest.reference
    assert redeemed.status == BookingStatus.COMPLETED


@pytest.fixture
def locked_reads(monkeypatch):
    """Records the ``for_update`` flag of every reservation and booking lookup"""
    calls = []

    def recording(repository, name):
        original = getattr(repository, name)

        async def get(self, reference, *, for_update=False):
            calls.append((name, repository.__name__, for_update))
            return await original(self, reference, for_update=for_update)

        monkeypatch.setattr(repository, name, get)

    recording(ReservationRepository, "get")
    recording(BookingRepository, "get")
    return calls


async def test_critical_sections_lock_the_rows_they_change(sql_container, locked_reads, clock):
    reservations, bookings = sql_container.reservations, sql_container.bookings

    cancelled = await reservations.create("tour", EXPERIENCE, adults(1), "ext-1")
    locked_reads.clear()
    await reservations.cancel(cancelled.reference, "ext-1")
    assert [flag for _, _, flag in locked_reads] == [False, True]

    held = await reservations.create("tour", EXPERIENCE, adults(2), "ext-2")
    locked_reads.clear()
    await reservations.extend(held.reference, 10, external_booking_ref="ext-2")
    assert [flag for _, _, flag in locked_reads] == [False, True]

    locked_reads.clear()
    booking = await bookings.confirm(held.reference, "ext-2")
    assert ("get", "ReservationRepository", True) in locked_reads

    locked_reads.clear()
    await bookings.redeem_ticket(booking.tickets[0].code, "ext-2")
    assert ("get", "BookingRepository", True) in locked_reads

    locked_reads.clear()
    await bookings.cancel(booking.reference, "ext-2")
    assert [flag for _, _, flag in locked_reads] == [False, True]

    lapsing = await reservations.create("tour", EXPERIENCE, adults(1), "ext-3")
    clock.advance(minutes=61)
    locked_reads.clear()
    assert await reservations.expire_one(lapsing.reference) is True
    assert [flag for _, _, flag in locked_reads] == [False, True]
