from .capacity_repository import CapacityRepository, ICapacityRepository, InMemoryCapacityRepository
from .reservation_repository import (
    IReservationRepository,
    InMemoryReservationRepository,
    ReservationRepository,
)
from .booking_repository import BookingRepository, IBookingRepository, InMemoryBookingRepository

__all__ = [
    "CapacityRepository",
    "ICapacityRepository",
    "InMemoryCapacityRepository",
    "ReservationRepository",
    "IReservationRepository",
    "InMemoryReservationRepository",
    "BookingRepository",
    "IBookingRepository",
    "InMemoryBookingRepository",
]
