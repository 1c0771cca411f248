"""User, Hotel and RoomType model definitions.

These tables are maintained by the account and catalogue parts of the
product; the booking core only reads them.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base
from ..core.dates import utcnow

if TYPE_CHECKING:
    from .inventory import RoomAvailability


class User(Base):
    """Registered traveler or hotel owner."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    passport_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"


class Hotel(Base):
    """Hotel listed by an owner."""

    __tablename__ = "hotels"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    owner_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("length(name) > 0", name="ck_hotel_name_not_empty"),
    )

    room_types: Mapped[list["RoomType"]] = relationship(
        "RoomType",
        back_populates="hotel",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Hotel(id={self.id}, name='{self.name}', owner_id={self.owner_id})>"


class RoomType(Base):
    """Bookable room type of a hotel with its default per-night capacity."""

    __tablename__ = "room_types"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    hotel_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("hotels.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Price per night stored in minor units
    price_per_night_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Capacity used for dates without an availability record
    base_availability: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("price_per_night_amount >= 0", name="ck_room_type_price_non_negative"),
        CheckConstraint("base_availability >= 0", name="ck_room_type_base_availability_non_negative"),
        CheckConstraint("length(currency) = 3", name="ck_room_type_currency_length"),
    )

    hotel: Mapped["Hotel"] = relationship("Hotel", back_populates="room_types", lazy="selectin")
    availability: Mapped[list["RoomAvailability"]] = relationship(
        "RoomAvailability",
        back_populates="room_type",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<RoomType(id={self.id}, hotel_id={self.hotel_id}, name='{self.name}', "
            f"base_availability={self.base_availability})>"
        )
