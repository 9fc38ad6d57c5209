from holdbook.domain.models import (
    GROUP_CATEGORY,
    Addon,
    AvailabilitySnapshot,
    AddonItem,
    Booking,
    BookingItem,
    BookingStatus,
    CapacityCounter,
    OpeningTime,
    PriceTier,
    Product,
    Reservation,
    ReservationStatus,
    Ticket,
    TicketStatus,
    Traveler,
    required_capacity,
)

__all__ = [
    "GROUP_CATEGORY",
    "Addon",
    "AvailabilitySnapshot",
    "AddonItem",
    "Booking",
    "BookingItem",
    "BookingStatus",
    "CapacityCounter",
    "OpeningTime",
    "PriceTier",
    "Product",
    "Reservation",
    "ReservationStatus",
    "Ticket",
    "TicketStatus",
    "Traveler",
    "required_capacity",
]
