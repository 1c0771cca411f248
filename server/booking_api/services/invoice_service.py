"""Invoice references for bookings."""

import logging
from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..models.booking import Booking
from ..models.invoice import Invoice

logger = logging.getLogger(__name__)


class InvoiceGenerator(ABC):
    """Renders an invoice document and returns where it can be fetched."""

    @abstractmethod
    async def generate(self, booking: Booking) -> str:
        """Return the URL of the invoice for ``booking``."""


class UrlInvoiceGenerator(InvoiceGenerator):
    """Points at ``{base_url}/booking-{id}.pdf``; rendering happens elsewhere."""

    def __init__(self, base_url: str | None = None):
        self.base_url = (base_url or settings.invoice_base_url).rstrip("/")

    async def generate(self, booking: Booking) -> str:
        return f"{self.base_url}/booking-{booking.id}.pdf"


def invoice_number_for(booking: Booking) -> str:
    return f"INV-{booking.created_at:%Y%m%d}-{booking.id.hex[:8].upper()}"


class InvoiceService:
    """Creates at most one invoice per booking."""

    def __init__(self, db: AsyncSession, generator: InvoiceGenerator):
        self.db = db
        self.generator = generator

    async def ensure_invoice(self, booking: Booking) -> Invoice:
        """Return the booking's invoice, generating it on first request."""
        result = await self.db.execute(select(Invoice).where(Invoice.booking_id == booking.id))
        invoice = result.scalar_one_or_none()
        if invoice is not None:
            return invoice

        pdf_url = await self.generator.generate(booking)
        invoice = Invoice(
            booking_id=booking.id,
            invoice_number=invoice_number_for(booking),
            pdf_url=pdf_url,
        )
        self.db.add(invoice)
        booking.invoice = invoice
        await self.db.commit()

        logger.info(
            "Invoice generated",
            extra={"booking_id": str(booking.id), "invoice_number": invoice.invoice_number}
        )
        return invoice
