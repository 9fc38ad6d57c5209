from .notification_service import (
    LogNotificationHandler,
    NotificationHandler,
    NotificationService,
    WebhookNotificationHandler,
)
from .availability_service import AvailabilityService
from .reservation_service import ReservationService
from .booking_service import BookingService
from .sweeper import ReservationSweeper

__all__ = [
    "LogNotificationHandler",
    "NotificationHandler",
    "NotificationService",
    "WebhookNotificationHandler",
    "AvailabilityService",
    "ReservationService",
    "BookingService",
    "ReservationSweeper",
]
