"""Service layer package."""

from .availability_service import AvailabilityService
from .booking_service import BookingService
from .cancellation_service import CancellationService
from .checkout_service import CheckoutService
from .idempotency_service import IdempotencyService
from .inventory_service import InventoryLedger
from .invoice_service import InvoiceService

__all__ = [
    "AvailabilityService",
    "BookingService",
    "CancellationService",
    "CheckoutService",
    "IdempotencyService",
    "InventoryLedger",
    "InvoiceService",
]
