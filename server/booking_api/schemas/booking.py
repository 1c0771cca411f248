"""Booking-related Pydantic schemas."""

from datetime import date, datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .common import Money


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class HotelStayStatus(str, Enum):
    """Hotel stay status enumeration."""
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentDetails(BaseModel):
    """Card details submitted at checkout."""

    card_number: str = Field(..., min_length=1, max_length=32, description="Card number, spaces allowed")
    card_expiry: str = Field(..., description="Expiry in MM/YY format")
    card_cvc: str = Field(..., min_length=3, max_length=4, description="Card security code")


class HotelStayRequest(BaseModel):
    """One hotel stay requested at checkout."""

    hotel_id: str = Field(..., description="Hotel to stay at")
    room_type_id: str = Field(..., description="Room type to book")
    check_in_date: date = Field(..., description="First night of the stay")
    check_out_date: date = Field(..., description="Departure date, not a night of the stay")
    number_of_rooms: int = Field(..., ge=1, le=50, description="Rooms to book")


class FlightRequest(BaseModel):
    """One flight itinerary requested at checkout."""

    segment_ids: List[str] = Field(
        ...,
        min_length=1,
        description="Flight ids; compound ids are flattened before booking"
    )
    origin: Optional[str] = Field(None, max_length=8, description="Departure airport code")
    destination: Optional[str] = Field(None, max_length=8, description="Arrival airport code")
    departure_time: Optional[datetime] = Field(None, description="Scheduled departure")
    arrival_time: Optional[datetime] = Field(None, description="Scheduled arrival")
    passengers: int = Field(1, ge=1, le=9, description="Number of passengers")


class CreateBookingRequest(BaseModel):
    """Checkout request."""

    payment: PaymentDetails
    hotel_stays: List[HotelStayRequest] = Field(default_factory=list)
    flights: List[FlightRequest] = Field(default_factory=list)


class CancelBookingRequest(BaseModel):
    """Optional body when cancelling a booking."""

    reason: Optional[str] = Field(None, max_length=500)


class HotelStay(BaseModel):
    """Hotel stay line item response."""

    id: str
    hotel_id: str
    hotel_name: Optional[str] = None
    room_type_id: str
    room_type_name: Optional[str] = None
    check_in_date: date
    check_out_date: date
    nights: int
    number_of_rooms: int
    total_price: Money
    status: HotelStayStatus


class FlightItem(BaseModel):
    """Flight line item response."""

    id: str
    segment_ids: List[str]
    booking_reference: Optional[str] = None
    ticket_number: Optional[str] = None
    departure_airport: Optional[str] = None
    arrival_airport: Optional[str] = None
    departure_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    airline: Optional[str] = None
    flight_number: Optional[str] = None
    passengers: int
    price: Money


class Invoice(BaseModel):
    """Invoice reference."""

    model_config = ConfigDict(from_attributes=True)

    invoice_number: str
    pdf_url: str
    created_at: datetime


class PaymentSummary(BaseModel):
    card_type: Optional[str] = None
    card_last4: Optional[str] = None
    card_expiry: Optional[str] = None


class Booking(BaseModel):
    """Booking response schema."""

    id: str = Field(..., description="Unique booking ID")
    user_id: str
    status: BookingStatus
    total_price: Money
    payment: PaymentSummary
    hotel_stays: List[HotelStay]
    flights: List[FlightItem]
    invoice: Optional[Invoice] = None
    created_at: datetime
    updated_at: datetime


class GatewayBookingSummary(BaseModel):
    """What the flight system returned for the checkout."""

    booking_reference: str
    ticket_number: Optional[str] = None
    flights: List[dict[str, Any]] = Field(default_factory=list)


class CreateBookingResponse(BaseModel):
    """Checkout response."""

    booking: Booking
    invoice: Optional[Invoice] = None
    flight_booking: Optional[GatewayBookingSummary] = None


class FlightCancellationResult(BaseModel):
    """Outcome of cancelling one flight booking reference."""

    booking_reference: str
    success: bool
    error: Optional[str] = None


class CancelBookingResponse(BaseModel):
    """Cancellation response."""

    booking: Booking
    flight_results: List[FlightCancellationResult]


class FlightVerification(BaseModel):
    """Current schedule status of a booked flight."""

    flight_item_id: str
    booking_reference: Optional[str] = None
    ticket_number: Optional[str] = None
    status: str
    verified: bool
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    airline: Optional[str] = None
    flight_number: Optional[str] = None
    message: str
    last_verified: datetime
