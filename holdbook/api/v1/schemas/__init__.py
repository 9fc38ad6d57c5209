from .common import PartnerModel, PartnerRequest
from .availability_schemas import (
    AvailabilityCheckIn,
    AvailabilityCheckOut,
    AvailabilityNotify,
    AvailabilityOut,
    AvailabilityUpdateIn,
)
from .reservation_schemas import (
    BookingItemIn,
    ReservationCancel,
    ReservationCreate,
    ReservationDetail,
    ReservationExtend,
    ReservationOut,
    ReservationStats,
)
from .booking_schemas import (
    AddonItemIn,
    BookingCancel,
    BookingCreate,
    BookingDetail,
    BookingOut,
    RedeemBooking,
    RedeemTicket,
    TicketDetail,
    TicketOut,
    TravelerIn,
)

__all__ = [
    "PartnerModel",
    "PartnerRequest",
    "AvailabilityCheckIn",
    "AvailabilityCheckOut",
    "AvailabilityNotify",
    "AvailabilityOut",
    "AvailabilityUpdateIn",
    "BookingItemIn",
    "ReservationCancel",
    "ReservationCreate",
    "ReservationDetail",
    "ReservationExtend",
    "ReservationOut",
    "ReservationStats",
    "AddonItemIn",
    "BookingCancel",
    "BookingCreate",
    "BookingDetail",
    "BookingOut",
    "RedeemBooking",
    "RedeemTicket",
    "TicketDetail",
    "TicketOut",
    "TravelerIn",
]
