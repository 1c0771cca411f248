"""Booking aggregate and line item model definitions."""

from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, Date, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base
from ..core.dates import DateRange, utcnow

if TYPE_CHECKING:
    from .hotel import Hotel, RoomType
    from .invoice import Invoice


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class HotelStayStatus(str, Enum):
    """Hotel stay line item status enumeration."""
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


# Statuses from which a booking may still be cancelled
CANCELLABLE_BOOKING_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)

# Stay statuses that hold inventory; pending kept for forward compatibility
ACTIVE_STAY_STATUSES = (HotelStayStatus.CONFIRMED.value, "pending")


class Booking(Base):
    """Booking entity grouping the hotel stays and flights of one checkout."""

    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True
    )

    # Total price stored as minor units
    total_price_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Payment summary, display only
    payment_card_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payment_card_last4: Mapped[str | None] = mapped_column(String(4), nullable=True)
    payment_card_expiry: Mapped[str | None] = mapped_column(String(5), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("total_price_amount >= 0", name="ck_booking_total_price_non_negative"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="ck_booking_status_valid"
        ),
    )

    hotel_stays: Mapped[list["HotelStay"]] = relationship(
        "HotelStay",
        back_populates="booking",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="HotelStay.created_at"
    )
    flight_items: Mapped[list["FlightItem"]] = relationship(
        "FlightItem",
        back_populates="booking",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="FlightItem.created_at"
    )
    invoice: Mapped["Invoice | None"] = relationship(
        "Invoice",
        back_populates="booking",
        cascade="all, delete-orphan",
        uselist=False,
        lazy="selectin"
    )

    @property
    def is_cancellable(self) -> bool:
        return self.status in CANCELLABLE_BOOKING_STATUSES

    @property
    def active_stays(self) -> list["HotelStay"]:
        return [stay for stay in self.hotel_stays if stay.is_active]

    @property
    def flight_references(self) -> list[str]:
        """Distinct external booking references, in line item order."""
        references: list[str] = []
        for item in self.flight_items:
            ref = item.external_booking_reference
            if ref and ref not in references:
                references.append(ref)
        return references

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, user_id={self.user_id}, status={self.status}, "
            f"total={self.total_price_amount} {self.currency})>"
        )


class HotelStay(Base):
    """Hotel stay line item: rooms of one room type over a date range."""

    __tablename__ = "hotel_stays"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    hotel_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("hotels.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    room_type_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("room_types.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    check_in_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    check_out_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    number_of_rooms: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price_amount: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[HotelStayStatus] = mapped_column(
        String(20),
        nullable=False,
        default=HotelStayStatus.CONFIRMED,
        index=True
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("number_of_rooms >= 1", name="ck_hotel_stay_rooms_positive"),
        CheckConstraint("check_out_date > check_in_date", name="ck_hotel_stay_dates_ordered"),
        CheckConstraint("total_price_amount >= 0", name="ck_hotel_stay_price_non_negative"),
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="hotel_stays")
    hotel: Mapped["Hotel"] = relationship("Hotel", lazy="selectin")
    room_type: Mapped["RoomType"] = relationship("RoomType", lazy="selectin")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STAY_STATUSES

    @property
    def stay_range(self) -> DateRange:
        return DateRange(self.check_in_date, self.check_out_date)

    def __repr__(self) -> str:
        return (
            f"<HotelStay(id={self.id}, room_type_id={self.room_type_id}, "
            f"{self.check_in_date}..{self.check_out_date}, rooms={self.number_of_rooms}, "
            f"status={self.status})>"
        )


class FlightItem(Base):
    """Flight line item booked through the external flight system."""

    __tablename__ = "flight_items"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Flattened external segment ids covered by this item
    segment_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Shared by every item created from the same gateway booking
    external_booking_reference: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    external_ticket_number: Mapped[str | None] = mapped_column(String(64), nullable=True)

    departure_airport: Mapped[str | None] = mapped_column(String(8), nullable=True)
    arrival_airport: Mapped[str | None] = mapped_column(String(8), nullable=True)
    departure_time: Mapped[datetime | None] = mapped_column(nullable=True)
    arrival_time: Mapped[datetime | None] = mapped_column(nullable=True)
    airline: Mapped[str | None] = mapped_column(String(100), nullable=True)
    flight_number: Mapped[str | None] = mapped_column(String(32), nullable=True)

    passengers: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    price_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Snapshot of the remote flight details returned at booking time
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("passengers >= 1", name="ck_flight_item_passengers_positive"),
        CheckConstraint("price_amount >= 0", name="ck_flight_item_price_non_negative"),
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="flight_items")

    def __repr__(self) -> str:
        return (
            f"<FlightItem(id={self.id}, booking_id={self.booking_id}, "
            f"reference={self.external_booking_reference}, segments={self.segment_ids})>"
        )
