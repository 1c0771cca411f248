"""Invoice model definition."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base
from ..core.dates import utcnow

if TYPE_CHECKING:
    from .booking import Booking


class Invoice(Base):
    """Invoice generated for a booking, at most one per booking."""

    __tablename__ = "invoices"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True
    )
    invoice_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    pdf_url: Mapped[str] = mapped_column(String(500), nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    booking: Mapped["Booking"] = relationship("Booking", back_populates="invoice")

    def __repr__(self) -> str:
        return f"<Invoice(id={self.id}, booking_id={self.booking_id}, number='{self.invoice_number}')>"
