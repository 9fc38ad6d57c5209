from enum import Enum
from typing import Any, Optional, Dict, Iterable


class ErrorCode(str, Enum):
    """Stable error vocabulary shared with distribution partners."""

    VALIDATION_FAILURE = "VALIDATION_FAILURE"
    NO_AVAILABILITY = "NO_AVAILABILITY"
    INVALID_PARTICIPANTS_CONFIGURATION = "INVALID_PARTICIPANTS_CONFIGURATION"
    INVALID_ADDONS_CONFIGURATION = "INVALID_ADDONS_CONFIGURATION"
    BOOKING_IN_PAST = "BOOKING_IN_PAST"
    BOOKING_ALREADY_CANCELLED = "BOOKING_ALREADY_CANCELLED"
    BOOKING_REDEEMED = "BOOKING_REDEEMED"
    INVALID_PRODUCT = "INVALID_PRODUCT"
    INVALID_RESERVATION = "INVALID_RESERVATION"
    INVALID_BOOKING = "INVALID_BOOKING"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    AUTHORIZATION_FAILURE = "AUTHORIZATION_FAILURE"
    INTERNAL_SYSTEM_FAILURE = "INTERNAL_SYSTEM_FAILURE"


class BaseError(Exception):
    """Base exception class for the application"""

    code: ErrorCode = ErrorCode.INTERNAL_SYSTEM_FAILURE

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        code: Optional[ErrorCode] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        if code is not None:
            self.code = code
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_body(self) -> Dict[str, Any]:
        """Partner-facing error body; details are already user safe."""
        return {"errorCode": self.code.value, "errorMessage": self.message, **self.details}


# ---------------------------------------------------------------------------
#  Taxonomy roots
# ---------------------------------------------------------------------------

class ValidationError(BaseError):
    """Malformed request or a state that makes the request meaningless"""

    code = ErrorCode.VALIDATION_FAILURE

    def __init__(self, message: str = "Validation failed", field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message=message, status_code=400, details=details)


class DomainError(BaseError):
    """Business rule violation"""

    def __init__(self, code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, status_code=400, details=details, code=code)


class NotFoundError(BaseError):
    """Exception raised when an entity is not found"""

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message=message, status_code=404, code=code)


class AuthorizationError(BaseError):
    """Exception raised for authorization errors"""

    code = ErrorCode.AUTHORIZATION_FAILURE

    def __init__(self, message: str = "Incorrect credentials provided"):
        super().__init__(message=message, status_code=401)


class SystemFailure(BaseError):
    """Transient or internal failure surfaced after internal retries"""

    code = ErrorCode.INTERNAL_SYSTEM_FAILURE

    def __init__(self, message: str = "An unexpected error occurred"):
        super().__init__(message=message, status_code=500)


# ---------------------------------------------------------------------------
#  Concrete cases
# ---------------------------------------------------------------------------

class NoAvailabilityError(DomainError):
    def __init__(self, message: str = "No availability for the requested date and time"):
        super().__init__(ErrorCode.NO_AVAILABILITY, message)


class InvalidParticipantsError(DomainError):
    """Carries the product limits so the caller can correct the request"""

    def __init__(
        self,
        message: str,
        min_participants: int,
        max_participants: Optional[int],
        max_groups: Optional[int] = None,
        violations: Iterable[str] = (),
    ):
        details: Dict[str, Any] = {
            "participantsConfiguration": {"min": min_participants, "max": max_participants}
        }
        if max_groups is not None:
            details["groupConfiguration"] = {"max": max_groups}
        super().__init__(ErrorCode.INVALID_PARTICIPANTS_CONFIGURATION, message, details)
        self.violations = list(violations)


class InvalidAddonsError(DomainError):
    def __init__(self, message: str = "Invalid addons configuration"):
        super().__init__(ErrorCode.INVALID_ADDONS_CONFIGURATION, message)


class BookingInPastError(DomainError):
    def __init__(self):
        super().__init__(ErrorCode.BOOKING_IN_PAST, "Booking is in the past and cannot be cancelled")


class BookingAlreadyCancelledError(DomainError):
    def __init__(self):
        super().__init__(ErrorCode.BOOKING_ALREADY_CANCELLED, "Booking has already been cancelled")


class BookingRedeemedError(DomainError):
    def __init__(self):
        super().__init__(ErrorCode.BOOKING_REDEEMED, "Booking has already been redeemed")


class InvalidProductError(NotFoundError):
    def __init__(self):
        super().__init__(
            ErrorCode.INVALID_PRODUCT,
            "Provided productId did not match an existing product in our system",
        )


class InvalidReservationError(NotFoundError):
    def __init__(self, message: str = "Invalid reservation reference or reservation has expired"):
        super().__init__(ErrorCode.INVALID_RESERVATION, message)


class InvalidBookingError(NotFoundError):
    def __init__(self, message: str = "Invalid booking reference"):
        super().__init__(ErrorCode.INVALID_BOOKING, message)


class ResourceNotFoundError(NotFoundError):
    def __init__(self, message: str = "Resource not found"):
        super().__init__(ErrorCode.RESOURCE_NOT_FOUND, message)


class LockTimeoutError(SystemFailure):
    """Per-key lock could not be obtained within the bounded wait"""

    def __init__(self, key: str):
        super().__init__("The system is busy, please retry in a moment")
        self.key = key


# ---------------------------------------------------------------------------
#  Internal signals (never rendered to partners directly)
# ---------------------------------------------------------------------------

class StoreUnavailableError(Exception):
    """Backing store or lock service could not be reached"""


class CapacityExceededError(Exception):
    """Conditional debit refused because it would pass the capacity limit"""

    def __init__(self, key: str, requested: int, committed: int, limit: int):
        super().__init__(f"{key}: {committed} + {requested} exceeds {limit}")
        self.key = key
        self.requested = requested
        self.committed = committed
        self.limit = limit


class ReferenceCollisionError(Exception):
    """A generated reference or ticket code already exists"""
