from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from .common import PartnerModel, PartnerRequest
from .booking_schemas import AddonItemIn
from .reservation_schemas import BookingItemIn


class AvailabilityOut(PartnerModel):
    """Schema for one day of availability"""
    date_time: datetime
    product_id: str
    vacancies: int
    cutoff_seconds: int
    currency: str
    prices_by_category: Optional[Dict[str, Any]] = None
    tiered_prices_by_category: Optional[Dict[str, Any]] = None
    vacancies_by_category: Optional[List[Dict[str, Any]]] = None
    opening_times: Optional[List[Dict[str, str]]] = None


class AvailabilityUpdateIn(PartnerModel):
    date_time: datetime
    vacancies: int = Field(..., ge=0)


class AvailabilityNotify(PartnerRequest):
    product_id: str = Field(..., min_length=1)
    availabilities: List[AvailabilityUpdateIn] = Field(..., min_length=1)


class AvailabilityCheckIn(PartnerRequest):
    product_id: str = Field(..., min_length=1)
    date_time: datetime
    booking_items: List[BookingItemIn] = Field(..., min_length=1)
    addon_items: List[AddonItemIn] = []


class AvailabilityCheckOut(PartnerModel):
    vacancies: int
    required_capacity: int
    can_book: bool
    pricing: Dict[str, Any]
