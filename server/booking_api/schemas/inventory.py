"""Availability and hotel-owner schemas."""

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .booking import BookingStatus, HotelStayStatus
from .common import Money


class AvailabilityUpdate(BaseModel):
    """New availability for one date."""

    date: dt.date = Field(..., description="Calendar date to update")
    available_rooms: int = Field(..., ge=0, strict=True, description="Rooms offered on that date")


class CancelledBooking(BaseModel):
    """Booking cancelled to make room for an availability cut."""

    booking_id: str
    stay_id: str
    rooms: int
    success: bool
    error: Optional[str] = None


class AvailabilityUpdateResult(BaseModel):
    """Outcome of one date of an availability batch."""

    date: dt.date
    status: str = Field(..., description="updated or conflict")
    available_rooms: int
    booked_rooms: int
    deficit: int = 0
    cancelled_bookings: List[CancelledBooking] = Field(default_factory=list)


class AvailabilityUpdateResponse(BaseModel):
    room_type_id: str
    results: List[AvailabilityUpdateResult]


class CalendarDay(BaseModel):
    """Availability of a room type on one date."""

    model_config = ConfigDict(from_attributes=True)

    date: dt.date
    available_rooms: int
    booked_rooms: int
    remaining_rooms: int
    is_manually_set: bool


class AvailabilityCalendar(BaseModel):
    room_type_id: str
    room_type_name: str
    base_availability: int
    days: List[CalendarDay]


class OwnerStay(BaseModel):
    """Hotel stay as seen by the hotel owner."""

    id: str
    booking_id: str
    booking_status: BookingStatus
    room_type_id: str
    room_type_name: Optional[str] = None
    guest_name: str
    guest_email: str
    check_in_date: dt.date
    check_out_date: dt.date
    number_of_rooms: int
    total_price: Money
    status: HotelStayStatus
    created_at: dt.datetime


class OwnerStayList(BaseModel):
    hotel_id: str
    stays: List[OwnerStay]


class OwnerCancelResponse(BaseModel):
    """Result of an owner cancelling one stay."""

    stay: OwnerStay
    booking_cancelled: bool = Field(..., description="Whether the parent booking was cancelled too")
