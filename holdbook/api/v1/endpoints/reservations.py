from fastapi import APIRouter, Path, Query

from holdbook.api.v1.schemas.reservation_schemas import (
    BookingItemIn,
    ReservationCancel,
    ReservationCreate,
    ReservationDetail,
    ReservationExtend,
    ReservationOut,
    ReservationStats,
)
from holdbook.deps import ReservationServiceDep
from holdbook.domain import Reservation


router = APIRouter()


def _out(reservation: Reservation) -> dict:
    out = ReservationOut(
        reservation_reference=reservation.reference,
        reservation_expiration=reservation.expires_at,
    )
    return {"data": out.model_dump(mode="json", by_alias=True)}


@router.post("")
async def create_reservation(body: ReservationCreate, service: ReservationServiceDep):
    """Hold capacity until the reservation expires or is confirmed"""
    reservation = await service.create(
        body.product_id,
        body.date_time,
        [item.to_domain() for item in body.booking_items],
        body.external_booking_ref,
        external_activity_ref=body.external_activity_ref,
    )
    return _out(reservation)


@router.post("/cancel")
async def cancel_reservation(body: ReservationCancel, service: ReservationServiceDep):
    await service.cancel(body.reservation_reference, body.external_booking_ref)
    return {"data": {}}


@router.post("/extend")
async def extend_reservation(body: ReservationExtend, service: ReservationServiceDep):
    reservation = await service.extend(
        body.reservation_reference,
        body.minutes,
        external_booking_ref=body.external_booking_ref,
    )
    return _out(reservation)


# Declared before /{reference} so "admin" is not taken for a reference
@router.get("/admin/stats")
async def reservation_stats(service: ReservationServiceDep):
    stats = await service.stats()
    return {"data": ReservationStats(**stats).model_dump(mode="json", by_alias=True)}


@router.get("/{reference}")
async def get_reservation(
    service: ReservationServiceDep,
    reference: str = Path(..., min_length=1),
    external_booking_ref: str = Query(..., alias="externalBookingRef", min_length=1),
):
    reservation = await service.get(reference, external_booking_ref)
    detail = ReservationDetail(
        reservation_reference=reservation.reference,
        product_id=reservation.product_id,
        date_time=reservation.date_time,
        booking_items=[
            BookingItemIn(category=i.category, count=i.count, group_size=i.group_size)
            for i in reservation.booking_items
        ],
        external_booking_ref=reservation.external_booking_ref,
        external_activity_ref=reservation.external_activity_ref,
        status=reservation.status.value,
        created_at=reservation.created_at,
        reservation_expiration=reservation.expires_at,
    )
    return {"data": detail.model_dump(mode="json", by_alias=True, exclude_none=True)}
