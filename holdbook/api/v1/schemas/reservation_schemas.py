from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field, field_validator

from holdbook.domain import BookingItem
from .common import PartnerModel, PartnerRequest


class BookingItemIn(PartnerModel):
    """One requested category line"""
    category: str = Field(..., min_length=1, max_length=32)
    count: int = Field(..., ge=0, le=10000)
    group_size: Optional[int] = Field(None, ge=1)

    @field_validator("category")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.strip().upper()

    def to_domain(self) -> BookingItem:
        return BookingItem(category=self.category, count=self.count, group_size=self.group_size)


class ReservationCreate(PartnerRequest):
    product_id: str = Field(..., min_length=1)
    date_time: datetime
    booking_items: List[BookingItemIn]
    external_booking_ref: str = Field(..., min_length=1, max_length=128)
    external_activity_ref: Optional[str] = Field(None, max_length=128)


class ReservationCancel(PartnerRequest):
    reservation_reference: str = Field(..., min_length=1)
    external_booking_ref: str = Field(..., min_length=1)


class ReservationExtend(PartnerRequest):
    reservation_reference: str = Field(..., min_length=1)
    external_booking_ref: str = Field(..., min_length=1)
    minutes: Optional[int] = Field(None, ge=1, le=24 * 60)


class ReservationOut(PartnerModel):
    reservation_reference: str
    reservation_expiration: datetime


class ReservationDetail(PartnerModel):
    reservation_reference: str
    product_id: str
    date_time: datetime
    booking_items: List[BookingItemIn]
    external_booking_ref: str
    external_activity_ref: Optional[str] = None
    status: str
    created_at: datetime
    reservation_expiration: datetime


class ReservationStats(PartnerModel):
    total: int
    active: int
    lapsed: int
    by_status: Dict[str, int]
    average_hold_time: int
    top_products: Dict[str, int]
