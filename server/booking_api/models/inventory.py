"""Per-date room availability record definition."""

from datetime import date, datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base
from ..core.dates import utcnow

if TYPE_CHECKING:
    from .hotel import RoomType


class RoomAvailability(Base):
    """
    Availability of one room type on one calendar date.

    ``available_rooms`` is the capacity set by the owner (or seeded from the
    room type's base availability); ``booked_rooms`` counts the rooms held by
    active stays. Free capacity for new bookings is the difference, floored
    at zero. Only the inventory ledger writes these rows.
    """

    __tablename__ = "room_availability"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    room_type_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("room_types.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    day: Mapped[date] = mapped_column("date", Date, nullable=False, index=True)

    available_rooms: Mapped[int] = mapped_column(Integer, nullable=False)
    booked_rooms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("room_type_id", "date", name="uq_room_availability_room_type_date"),
        CheckConstraint("booked_rooms >= 0", name="ck_room_availability_booked_non_negative"),
    )

    room_type: Mapped["RoomType"] = relationship("RoomType", back_populates="availability")

    @property
    def free_rooms(self) -> int:
        return max(0, self.available_rooms - self.booked_rooms)

    def __repr__(self) -> str:
        return (
            f"<RoomAvailability(room_type_id={self.room_type_id}, date={self.day}, "
            f"available={self.available_rooms}, booked={self.booked_rooms})>"
        )
