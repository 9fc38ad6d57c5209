from datetime import datetime
from typing import List, Optional

from pydantic import Field

from holdbook.domain import AddonItem, Traveler
from .common import PartnerModel, PartnerRequest
from .reservation_schemas import BookingItemIn


class AddonItemIn(PartnerModel):
    addon_type: str = Field(..., min_length=1)
    addon_description: Optional[str] = None

    def to_domain(self) -> AddonItem:
        return AddonItem(addon_type=self.addon_type, addon_description=self.addon_description)


class TravelerIn(PartnerModel):
    first_name: str = Field(..., min_length=1, max_length=64)
    last_name: str = Field(..., min_length=1, max_length=64)
    email: Optional[str] = Field(None, max_length=254)
    phone_number: Optional[str] = Field(None, max_length=32)

    def to_domain(self) -> Traveler:
        return Traveler(
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            phone_number=self.phone_number,
        )


class BookingCreate(PartnerRequest):
    """Confirmation of a held reservation.

    ``dateTime`` and ``bookingItems`` are accepted for partner compatibility;
    the held reservation is authoritative for both.
    """
    product_id: Optional[str] = None
    reservation_reference: str = Field(..., min_length=1)
    external_booking_ref: str = Field(..., min_length=1, max_length=128)
    external_activity_ref: Optional[str] = Field(None, max_length=128)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    date_time: Optional[datetime] = None
    booking_items: List[BookingItemIn] = []
    addon_items: List[AddonItemIn] = []
    travelers: List[TravelerIn] = []
    language: str = Field("en", max_length=8)
    comment: Optional[str] = Field(None, max_length=1024)


class BookingCancel(PartnerRequest):
    booking_reference: str = Field(..., min_length=1)
    external_booking_ref: str = Field(..., min_length=1)
    product_id: Optional[str] = None


class RedeemTicket(PartnerRequest):
    ticket_code: str = Field(..., min_length=1)
    external_booking_ref: str = Field(..., min_length=1)


class RedeemBooking(PartnerRequest):
    external_booking_ref: str = Field(..., min_length=1)


class TicketOut(PartnerModel):
    category: str
    ticket_code: str
    ticket_code_type: str
    group_size: Optional[int] = None


class TicketDetail(TicketOut):
    status: str
    redeemed_at: Optional[datetime] = None


class BookingOut(PartnerModel):
    booking_reference: str
    tickets: List[TicketOut]


class BookingDetail(PartnerModel):
    booking_reference: str
    reservation_reference: str
    product_id: str
    external_booking_ref: str
    date_time: datetime
    currency: str
    status: str
    booking_items: List[BookingItemIn]
    tickets: List[TicketDetail]
    created_at: datetime
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
