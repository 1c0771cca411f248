"""Models module exporting all database models."""

from .booking import Booking, BookingStatus, FlightItem, HotelStay, HotelStayStatus
from .hotel import Hotel, RoomType, User
from .idempotency import IdempotencyRecord
from .inventory import RoomAvailability
from .invoice import Invoice
from .notification import Notification, NotificationType

__all__ = [
    # Catalogue entities (read by the booking core)
    "User",
    "Hotel",
    "RoomType",

    # Booking aggregate
    "Booking",
    "BookingStatus",
    "HotelStay",
    "HotelStayStatus",
    "FlightItem",
    "Invoice",

    # Inventory ledger
    "RoomAvailability",

    # Side effects
    "Notification",
    "NotificationType",

    # Idempotency entity
    "IdempotencyRecord",
]
