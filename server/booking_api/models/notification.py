"""Notification model definition."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import Boolean, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base
from ..core.dates import utcnow


class NotificationType(str, Enum):
    """Kinds of notification emitted by booking workflows."""
    BOOKING_CREATED = "booking_created"
    NEW_RESERVATION = "new_reservation"
    BOOKING_CANCELLED = "booking_cancelled"
    HOTEL_BOOKING_CANCELLED = "hotel_booking_cancelled"


class Notification(Base):
    """Persisted notification record; delivery is handled elsewhere."""

    __tablename__ = "notifications"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    related_booking_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, user_id={self.user_id}, type='{self.type}')>"
