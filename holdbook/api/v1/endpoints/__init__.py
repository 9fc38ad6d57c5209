from . import availability, bookings, reservations

__all__ = ["availability", "bookings", "reservations"]
