from datetime import datetime

from fastapi import APIRouter, Query, status

from holdbook.api.v1.schemas.availability_schemas import (
    AvailabilityCheckIn,
    AvailabilityCheckOut,
    AvailabilityNotify,
    AvailabilityOut,
)
from holdbook.deps import AvailabilityServiceDep


router = APIRouter()


@router.get("")
async def get_availabilities(
    service: AvailabilityServiceDep,
    product_id: str = Query(..., alias="productId", min_length=1),
    from_date_time: datetime = Query(..., alias="fromDateTime"),
    to_date_time: datetime = Query(..., alias="toDateTime"),
):
    """One entry per day between fromDateTime and toDateTime"""
    snapshots = await service.get_availabilities(product_id, from_date_time, to_date_time)
    return {
        "data": {
            "availabilities": [
                AvailabilityOut.model_validate(s).model_dump(mode="json", by_alias=True, exclude_none=True)
                for s in snapshots
            ]
        }
    }


@router.post("/notify", status_code=status.HTTP_202_ACCEPTED)
async def notify_availability(body: AvailabilityNotify, service: AvailabilityServiceDep):
    """Supplier-pushed vacancies for specific dates"""
    message = await service.notify(
        body.product_id,
        [{"date_time": a.date_time, "vacancies": a.vacancies} for a in body.availabilities],
    )
    return {"data": {"message": message}}


@router.post("/check")
async def check_availability(body: AvailabilityCheckIn, service: AvailabilityServiceDep):
    result = await service.check(
        body.product_id,
        body.date_time,
        [item.to_domain() for item in body.booking_items],
        [addon.to_domain() for addon in body.addon_items],
    )
    out = AvailabilityCheckOut(
        vacancies=result.vacancies,
        required_capacity=result.required_capacity,
        can_book=result.can_book,
        pricing=result.pricing,
    )
    return {"data": out.model_dump(mode="json", by_alias=True)}
