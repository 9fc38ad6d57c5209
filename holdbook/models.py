from sqlalchemy import (
    String, Integer, ForeignKey, DateTime, Date, JSON, Index
)
from sqlalchemy.orm import mapped_column, relationship, DeclarativeBase


class Base(DeclarativeBase): ...


# ---------- Capacity ----------
class CapacityCounterRow(Base):
    __tablename__ = "capacity_counters"
    product_id        = mapped_column(String(64), primary_key=True)
    day               = mapped_column(Date, primary_key=True)
    committed         = mapped_column(Integer, nullable=False, default=0)
    # Supplier-pushed capacity for this date, replaces the product capacity
    capacity_override = mapped_column(Integer, nullable=True)


# ---------- Holds ----------
class ReservationRow(Base):
    __tablename__ = "reservations"
    reference             = mapped_column(String(40), primary_key=True)
    product_id            = mapped_column(String(64), nullable=False)
    date_time             = mapped_column(DateTime(timezone=True), nullable=False)
    booking_items         = mapped_column(JSON, nullable=False)   # [{category, count, groupSize}]
    external_booking_ref  = mapped_column(String(128), nullable=False)
    external_activity_ref = mapped_column(String(128))
    status                = mapped_column(String(16), nullable=False, default="ACTIVE")
    created_at            = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at            = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at            = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        # Sweep scans ACTIVE rows ordered by expiry
        Index("ix_reservations_status_expires", "status", "expires_at"),
    )


# ---------- Bookings & tickets ----------
class BookingRow(Base):
    __tablename__ = "bookings"
    reference             = mapped_column(String(40), primary_key=True)
    product_id            = mapped_column(String(64), nullable=False)
    reservation_ref       = mapped_column(ForeignKey("reservations.reference"), unique=True, nullable=False)
    external_booking_ref  = mapped_column(String(128), nullable=False, index=True)
    external_activity_ref = mapped_column(String(128))
    date_time             = mapped_column(DateTime(timezone=True), nullable=False)
    currency              = mapped_column(String(3), nullable=False)
    language              = mapped_column(String(8), nullable=False, default="en")
    comment               = mapped_column(String(1024))
    booking_items         = mapped_column(JSON, nullable=False)
    addon_items           = mapped_column(JSON, nullable=False, default=list)
    travelers             = mapped_column(JSON, nullable=False, default=list)
    status                = mapped_column(String(16), nullable=False, default="CONFIRMED")
    created_at            = mapped_column(DateTime(timezone=True), nullable=False)
    cancelled_at          = mapped_column(DateTime(timezone=True))
    completed_at          = mapped_column(DateTime(timezone=True))

    tickets = relationship(
        "TicketRow",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="TicketRow.position",
    )


class TicketRow(Base):
    __tablename__ = "tickets"
    # Primary key doubles as the system-wide uniqueness guarantee for codes
    code             = mapped_column(String(40), primary_key=True)
    booking_ref      = mapped_column(ForeignKey("bookings.reference"), nullable=False, index=True)
    position         = mapped_column(Integer, nullable=False, default=0)
    category         = mapped_column(String(32), nullable=False)
    ticket_code_type = mapped_column(String(16), nullable=False)
    group_size       = mapped_column(Integer)
    status           = mapped_column(String(16), nullable=False, default="ACTIVE")
    redeemed_at      = mapped_column(DateTime(timezone=True))

    booking = relationship("BookingRow", back_populates="tickets")
