"""Domain models for products, holds, bookings and tickets.

Products are consumed read-only from the catalog. Reservations, bookings and
tickets are mutable records owned by their service; repositories hand out
copies so a rolled back unit of work never leaks half-applied state.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

GROUP_CATEGORY = "GROUP"


class ReservationStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CONFIRMED = "CONFIRMED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class BookingStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class TicketStatus(str, Enum):
    ACTIVE = "ACTIVE"
    REDEEMED = "REDEEMED"
    CANCELLED = "CANCELLED"


# ---------- Product configuration ----------

@dataclass(frozen=True)
class PriceTier:
    """Price for a quantity band; an open upper bound covers everything above."""

    lower_bound: int
    upper_bound: Optional[int]
    price: Decimal

    def matches(self, quantity: int) -> bool:
        if quantity < self.lower_bound:
            return False
        return self.upper_bound is None or quantity <= self.upper_bound


@dataclass(frozen=True)
class OpeningTime:
    from_time: str
    to_time: str


@dataclass(frozen=True)
class Addon:
    addon_type: str
    addon_description: Optional[str] = None
    retail_price: Decimal = Decimal("0")


@dataclass(frozen=True)
class Product:
    """Domain representation of a sellable experience."""

    id: str
    title: str
    currency: str
    capacity: int
    overbooking_limit: int = 0
    min_participants: Optional[int] = None
    max_participants: Optional[int] = None
    max_group_size: Optional[int] = None
    max_groups: Optional[int] = None
    same_day_cutoff_minutes: Optional[int] = None
    advance_cutoff_hours: Optional[int] = None
    price_over_api: bool = True
    prices: Mapping[str, Decimal] = field(default_factory=dict)
    tiered_prices: Mapping[str, Tuple[PriceTier, ...]] = field(default_factory=dict)
    category_vacancy_shares: Mapping[str, int] = field(default_factory=dict)
    disabled_dates: FrozenSet[date] = frozenset()
    product_type: str = "time_point"
    opening_times: Tuple[OpeningTime, ...] = ()
    addons: Tuple[Addon, ...] = ()
    ticket_code_type: str = "QR_CODE"

    def __post_init__(self) -> None:
        if self.capacity < 0:
            raise ValueError("Capacity cannot be negative")
        if self.overbooking_limit < 0:
            raise ValueError("Overbooking limit cannot be negative")

    @property
    def capacity_limit(self) -> int:
        return self.capacity + self.overbooking_limit

    def is_date_disabled(self, day: date) -> bool:
        return day in self.disabled_dates


# ---------- Requested items ----------

@dataclass(frozen=True)
class BookingItem:
    category: str
    count: int
    group_size: Optional[int] = None

    @property
    def is_group(self) -> bool:
        return self.category == GROUP_CATEGORY

    @property
    def units(self) -> int:
        """Capacity consumed by this item"""
        if self.is_group:
            return (self.group_size or 0) * self.count
        return self.count


def required_capacity(items: Iterable[BookingItem]) -> int:
    return sum(item.units for item in items)


@dataclass(frozen=True)
class AddonItem:
    addon_type: str
    addon_description: Optional[str] = None


@dataclass(frozen=True)
class Traveler:
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone_number: Optional[str] = None


# ---------- Capacity ----------

@dataclass
class CapacityCounter:
    """Committed units for one (product, date) key plus any supplier override."""

    product_id: str
    day: date
    committed: int = 0
    capacity_override: Optional[int] = None


# ---------- Holds, bookings, tickets ----------

@dataclass
class Reservation:
    reference: str
    product_id: str
    date_time: datetime
    booking_items: Tuple[BookingItem, ...]
    external_booking_ref: str
    status: ReservationStatus
    created_at: datetime
    expires_at: datetime
    updated_at: datetime
    external_activity_ref: Optional[str] = None

    @property
    def day(self) -> date:
        return self.date_time.date()

    @property
    def required_capacity(self) -> int:
        return required_capacity(self.booking_items)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now

    def is_holding(self, now: datetime) -> bool:
        return self.status == ReservationStatus.ACTIVE and not self.is_expired(now)


@dataclass
class Ticket:
    code: str
    category: str
    ticket_code_type: str
    booking_ref: str
    status: TicketStatus = TicketStatus.ACTIVE
    group_size: Optional[int] = None
    redeemed_at: Optional[datetime] = None


@dataclass
class Booking:
    reference: str
    product_id: str
    reservation_ref: str
    external_booking_ref: str
    date_time: datetime
    currency: str
    booking_items: Tuple[BookingItem, ...]
    addon_items: Tuple[AddonItem, ...]
    travelers: Tuple[Traveler, ...]
    tickets: List[Ticket]
    status: BookingStatus
    created_at: datetime
    external_activity_ref: Optional[str] = None
    language: str = "en"
    comment: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def day(self) -> date:
        return self.date_time.date()

    @property
    def required_capacity(self) -> int:
        return required_capacity(self.booking_items)

    @property
    def active_tickets(self) -> List[Ticket]:
        return [t for t in self.tickets if t.status == TicketStatus.ACTIVE]

    @property
    def has_redeemed_tickets(self) -> bool:
        return any(t.status == TicketStatus.REDEEMED for t in self.tickets)

    def ticket(self, code: str) -> Optional[Ticket]:
        for ticket in self.tickets:
            if ticket.code == code:
                return ticket
        return None


# ---------- Derived views ----------

@dataclass(frozen=True)
class AvailabilitySnapshot:
    """One day of availability; recomputed on every query, never stored."""

    date_time: datetime
    product_id: str
    vacancies: int
    cutoff_seconds: int
    currency: str
    prices_by_category: Optional[Dict[str, Any]] = None
    tiered_prices_by_category: Optional[Dict[str, Any]] = None
    vacancies_by_category: Optional[List[Dict[str, Any]]] = None
    opening_times: Optional[List[Dict[str, str]]] = None
