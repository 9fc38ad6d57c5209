from fastapi import APIRouter, Path
from fastapi.responses import Response

from holdbook.api.v1.schemas.booking_schemas import (
    BookingCancel,
    BookingCreate,
    BookingDetail,
    BookingOut,
    RedeemBooking,
    RedeemTicket,
    TicketDetail,
    TicketOut,
)
from holdbook.api.v1.schemas.reservation_schemas import BookingItemIn
from holdbook.core.exceptions import ResourceNotFoundError
from holdbook.deps import BookingServiceDep
from holdbook.services.ticket_renderer import render_ticket


router = APIRouter()


@router.post("")
async def create_booking(body: BookingCreate, service: BookingServiceDep):
    """Confirm a held reservation and issue its tickets"""
    booking = await service.confirm(
        body.reservation_reference,
        body.external_booking_ref,
        [a.to_domain() for a in body.addon_items],
        [t.to_domain() for t in body.travelers],
        product_id=body.product_id,
        external_activity_ref=body.external_activity_ref,
        currency=body.currency,
        language=body.language,
        comment=body.comment,
    )
    out = BookingOut(
        booking_reference=booking.reference,
        tickets=[
            TicketOut(
                category=t.category,
                ticket_code=t.code,
                ticket_code_type=t.ticket_code_type,
                group_size=t.group_size,
            )
            for t in booking.tickets
        ],
    )
    return {"data": out.model_dump(mode="json", by_alias=True, exclude_none=True)}


@router.post("/cancel")
async def cancel_booking(body: BookingCancel, service: BookingServiceDep):
    await service.cancel(body.booking_reference, body.external_booking_ref, product_id=body.product_id)
    return {"data": {}}


@router.post("/redeem-ticket")
async def redeem_ticket(body: RedeemTicket, service: BookingServiceDep):
    await service.redeem_ticket(body.ticket_code, body.external_booking_ref)
    return {"success": True}


@router.post("/redeem-booking")
async def redeem_booking(body: RedeemBooking, service: BookingServiceDep):
    await service.redeem_booking(body.external_booking_ref)
    return {"success": True}


@router.get("/{reference}")
async def get_booking(service: BookingServiceDep, reference: str = Path(..., min_length=1)):
    booking = await service.get(reference)
    detail = BookingDetail(
        booking_reference=booking.reference,
        reservation_reference=booking.reservation_ref,
        product_id=booking.product_id,
        external_booking_ref=booking.external_booking_ref,
        date_time=booking.date_time,
        currency=booking.currency,
        status=booking.status.value,
        booking_items=[
            BookingItemIn(category=i.category, count=i.count, group_size=i.group_size)
            for i in booking.booking_items
        ],
        tickets=[
            TicketDetail(
                category=t.category,
                ticket_code=t.code,
                ticket_code_type=t.ticket_code_type,
                group_size=t.group_size,
                status=t.status.value,
                redeemed_at=t.redeemed_at,
            )
            for t in booking.tickets
        ],
        created_at=booking.created_at,
        cancelled_at=booking.cancelled_at,
        completed_at=booking.completed_at,
    )
    return {"data": detail.model_dump(mode="json", by_alias=True, exclude_none=True)}


@router.get("/{reference}/tickets/{code}.png")
async def ticket_image(
    service: BookingServiceDep,
    reference: str = Path(..., min_length=1),
    code: str = Path(..., min_length=1),
):
    """QR image of one ticket code"""
    booking = await service.get(reference)
    ticket = booking.ticket(code)
    if ticket is None:
        raise ResourceNotFoundError("Ticket not found")
    return Response(content=render_ticket(ticket), media_type="image/png")
