from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from holdbook.core import BaseService, ValidationError
from holdbook.core.clock import ensure_utc
from holdbook.core.exceptions import (
    CapacityExceededError,
    InvalidParticipantsError,
    InvalidReservationError,
    NoAvailabilityError,
)
from holdbook.core.references import new_reference
from holdbook.domain import (
    BookingItem,
    Product,
    Reservation,
    ReservationStatus,
    required_capacity,
)
from holdbook.locks import capacity_key
from holdbook.services.availability_service import (
    AvailabilityService,
    capacity_limit,
    compute_vacancies,
)
from holdbook.services.notification_service import (
    RESERVATION_CANCELLED,
    RESERVATION_CREATED,
    RESERVATION_EXPIRED,
    NotificationService,
)

logger = logging.getLogger(__name__)


def validate_participants(product: Product, items: Sequence[BookingItem]) -> None:
    """Check head count and group rules; every violation is reported at once."""
    minimum = product.min_participants or 1
    total = required_capacity(items)
    violations: List[str] = []
    group_violation = False

    if total < minimum:
        violations.append(f"The activity requires a minimum of {minimum} participants")
    if product.max_participants and total > product.max_participants:
        violations.append(
            f"The activity cannot be reserved for more than {product.max_participants} participants"
        )

    groups = [item for item in items if item.is_group]
    for index, group in enumerate(groups):
        if not group.group_size or group.group_size < 1:
            group_violation = True
            violations.append(f"Group item {index + 1} is missing a groupSize")
        elif product.max_group_size and group.group_size > product.max_group_size:
            group_violation = True
            violations.append(
                f"Group item {index + 1} has {group.group_size} participants, "
                f"the activity cannot be reserved for more than {product.max_group_size} participants per group"
            )
    group_count = sum(group.count for group in groups)
    if product.max_groups and group_count > product.max_groups:
        group_violation = True
        violations.append(f"Maximum {product.max_groups} groups allowed per booking")

    if not violations:
        return
    if group_violation:
        raise InvalidParticipantsError(
            "; ".join(violations),
            min_participants=minimum,
            max_participants=product.max_group_size,
            max_groups=product.max_groups or 1,
            violations=violations,
        )
    raise InvalidParticipantsError(
        "; ".join(violations),
        min_participants=minimum,
        max_participants=product.max_participants,
        violations=violations,
    )


def _event(reservation: Reservation) -> Dict[str, Any]:
    return {
        "reservationReference": reservation.reference,
        "productId": reservation.product_id,
        "dateTime": reservation.date_time.isoformat(),
        "externalBookingRef": reservation.external_booking_ref,
        "requiredCapacity": reservation.required_capacity,
        "status": reservation.status.value,
    }


class ReservationService(BaseService):
    """Time-bounded capacity holds.

    ``ACTIVE`` moves to exactly one of ``CONFIRMED`` (booking ledger),
    ``CANCELLED`` or ``EXPIRED``; each of those releases or converts the debit
    once, always under the (product, date) lock.
    """

    def __init__(self, uow_factory, locks, clock, settings, availability: AvailabilityService, notifications: NotificationService):
        super().__init__(uow_factory, locks, clock, settings)
        self.availability = availability
        self.notifications = notifications

    async def create(
        self,
        product_id: str,
        date_time: datetime,
        booking_items: Sequence[BookingItem],
        external_booking_ref: str,
        external_activity_ref: Optional[str] = None,
    ) -> Reservation:
        product = await self.availability.get_product(product_id)
        date_time = ensure_utc(date_time)
        items = tuple(booking_items)
        validate_participants(product, items)
        required = required_capacity(items)
        day = date_time.date()
        key = capacity_key(product.id, day)

        async def reserve(uow) -> Reservation:
            now = self.clock.now()
            counter = await uow.capacity.get_counter(product.id, day)
            vacancies = compute_vacancies(product, counter, date_time, now, self.settings)
            if required > vacancies:
                logger.info("No availability on %s: %s requested, %s left", key, required, vacancies)
                raise NoAvailabilityError()
            try:
                await uow.capacity.debit(product.id, day, required, capacity_limit(product, counter))
            except CapacityExceededError as exc:
                raise NoAvailabilityError() from exc

            reservation = Reservation(
                reference=new_reference("RES", now),
                product_id=product.id,
                date_time=date_time,
                booking_items=items,
                external_booking_ref=external_booking_ref,
                external_activity_ref=external_activity_ref,
                status=ReservationStatus.ACTIVE,
                created_at=now,
                expires_at=now + timedelta(minutes=self.settings.RESERVATION_TTL_MINUTES),
                updated_at=now,
            )
            await uow.reservations.add(reservation)
            return reservation

        reservation = await self._with_fresh_references(lambda: self._atomically(key, reserve))
        logger.info(
            "Reservation %s holds %s on %s until %s",
            reservation.reference, required, key, reservation.expires_at.isoformat(),
        )
        self.notifications.dispatch(RESERVATION_CREATED, _event(reservation))
        return reservation

    async def _load(self, reference: str, external_booking_ref: Optional[str] = None) -> Reservation:
        reservation = await self._read(lambda uow: uow.reservations.get(reference))
        if reservation is None:
            raise InvalidReservationError()
        if external_booking_ref is not None and reservation.external_booking_ref != external_booking_ref:
            raise InvalidReservationError()
        return reservation

    async def cancel(self, reference: str, external_booking_ref: str) -> Reservation:
        found = await self._load(reference, external_booking_ref)

        async def release(uow) -> Reservation:
            reservation = await uow.reservations.get(reference, for_update=True)
            if reservation is None or reservation.status != ReservationStatus.ACTIVE:
                raise InvalidReservationError()
            await uow.capacity.credit(reservation.product_id, reservation.day, reservation.required_capacity)
            reservation.status = ReservationStatus.CANCELLED
            reservation.updated_at = self.clock.now()
            await uow.reservations.save(reservation)
            return reservation

        reservation = await self._atomically(capacity_key(found.product_id, found.day), release)
        logger.info("Reservation %s cancelled, %s released", reference, reservation.required_capacity)
        self.notifications.dispatch(RESERVATION_CANCELLED, _event(reservation))
        return reservation

    async def extend(
        self,
        reference: str,
        minutes: Optional[int] = None,
        external_booking_ref: Optional[str] = None,
    ) -> Reservation:
        """Push the expiry forward, never past ``createdAt`` plus the maximum hold"""
        if minutes is None:
            minutes = self.settings.RESERVATION_EXTEND_MINUTES
        if minutes <= 0:
            raise ValidationError("minutes must be positive", field="minutes")
        found = await self._load(reference, external_booking_ref)

        async def push(uow) -> Reservation:
            reservation = await uow.reservations.get(reference, for_update=True)
            now = self.clock.now()
            if reservation is None or not reservation.is_holding(now):
                raise InvalidReservationError()
            ceiling = reservation.created_at + timedelta(minutes=self.settings.RESERVATION_MAX_HOLD_MINUTES)
            reservation.expires_at = min(reservation.expires_at + timedelta(minutes=minutes), ceiling)
            reservation.updated_at = now
            await uow.reservations.save(reservation)
            return reservation

        reservation = await self._atomically(capacity_key(found.product_id, found.day), push)
        logger.info("Reservation %s now expires at %s", reference, reservation.expires_at.isoformat())
        return reservation

    async def get(self, reference: str, external_booking_ref: Optional[str] = None) -> Reservation:
        """An unexpired hold; a given *external_booking_ref* must be the one it was made with"""
        reservation = await self._load(reference, external_booking_ref)
        if not reservation.is_holding(self.clock.now()):
            raise InvalidReservationError()
        return reservation

    async def expire_one(self, reference: str) -> bool:
        """Expire a single lapsed hold; False when it was already settled."""
        found = await self._read(lambda uow: uow.reservations.get(reference))
        if found is None:
            return False

        async def lapse(uow) -> Optional[Reservation]:
            reservation = await uow.reservations.get(reference, for_update=True)
            now = self.clock.now()
            # Re-read under the lock: a confirm or cancel that got here first wins
            if reservation is None or reservation.status != ReservationStatus.ACTIVE:
                return None
            if not reservation.is_expired(now):
                return None
            await uow.capacity.credit(reservation.product_id, reservation.day, reservation.required_capacity)
            reservation.status = ReservationStatus.EXPIRED
            reservation.updated_at = now
            await uow.reservations.save(reservation)
            return reservation

        reservation = await self._atomically(capacity_key(found.product_id, found.day), lapse)
        if reservation is None:
            return False
        self.notifications.dispatch(RESERVATION_EXPIRED, _event(reservation))
        return True

    async def expire_lapsed(self, limit: Optional[int] = None) -> int:
        """Expire every ACTIVE hold past its expiry; returns how many were released"""
        now = self.clock.now()
        batch = limit or self.settings.SWEEP_BATCH_SIZE
        lapsed = await self._read(lambda uow: uow.reservations.list_expired(now, limit=batch))
        expired = 0
        for reservation in lapsed:
            try:
                if await self.expire_one(reservation.reference):
                    expired += 1
            except Exception:
                logger.exception("Could not expire reservation %s", reservation.reference)
        if expired:
            logger.info("Expired %s lapsed reservation(s)", expired)
        return expired

    async def stats(self) -> Dict[str, Any]:
        """Counts per status, live holds, average live hold age and per-product totals"""
        reservations = await self._read(lambda uow: uow.reservations.list_all())
        now = self.clock.now()
        by_status = {status.value: 0 for status in ReservationStatus}
        top_products: Dict[str, int] = {}
        holding = []
        for reservation in reservations:
            by_status[reservation.status.value] += 1
            top_products[reservation.product_id] = top_products.get(reservation.product_id, 0) + 1
            if reservation.is_holding(now):
                holding.append(reservation)

        average = 0
        if holding:
            total_seconds = sum((now - r.created_at).total_seconds() for r in holding)
            average = round(total_seconds / len(holding) / 60)

        return {
            "total": len(reservations),
            "active": len(holding),
            "lapsed": sum(
                1 for r in reservations
                if r.status == ReservationStatus.ACTIVE and r.is_expired(now)
            ),
            "byStatus": by_status,
            "averageHoldTime": average,
            "topProducts": top_products,
        }
