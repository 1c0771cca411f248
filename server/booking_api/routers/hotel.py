"""Hotel owner router: availability management and stay administration."""

import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query

from ..core.dependencies import (
    get_availability_service,
    get_cancellation_service,
    resolve_caller,
)
from ..core.exceptions import ValidationError
from ..models.booking import Booking as BookingModel
from ..models.booking import HotelStay as HotelStayModel
from ..models.hotel import User
from ..schemas.booking import CancelBookingRequest, HotelStayStatus
from ..schemas.common import Money
from ..schemas.inventory import (
    AvailabilityCalendar,
    AvailabilityUpdate,
    AvailabilityUpdateResponse,
    AvailabilityUpdateResult,
    CalendarDay,
    OwnerCancelResponse,
    OwnerStay,
    OwnerStayList,
)
from ..services.availability_service import AvailabilityService
from ..services.cancellation_service import CancellationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/hotels", tags=["hotels"])

CALLER_DEPENDENCY = Depends(resolve_caller)
AVAILABILITY_DEPENDENCY = Depends(get_availability_service)
CANCELLATION_DEPENDENCY = Depends(get_cancellation_service)

MAX_CALENDAR_DAYS = 366


def _convert_owner_stay(stay: HotelStayModel, booking: BookingModel, guest: User) -> OwnerStay:
    """Convert a stay with its booking and guest to the owner view."""
    return OwnerStay(
        id=str(stay.id),
        booking_id=str(booking.id),
        booking_status=booking.status,
        room_type_id=str(stay.room_type_id),
        room_type_name=stay.room_type.name if stay.room_type else None,
        guest_name=f"{guest.first_name} {guest.last_name}",
        guest_email=guest.email,
        check_in_date=stay.check_in_date,
        check_out_date=stay.check_out_date,
        number_of_rooms=stay.number_of_rooms,
        total_price=Money(amount=stay.total_price_amount, currency=booking.currency),
        status=stay.status,
        created_at=stay.created_at,
    )


@router.get("/{hotel_id}/room-types/{room_type_id}/availability", response_model=AvailabilityCalendar)
async def get_availability(
    hotel_id: UUID,
    room_type_id: UUID,
    start_date: date = Query(..., description="First date of the calendar"),
    end_date: date = Query(..., description="Last date of the calendar, inclusive"),
    owner_id: UUID = CALLER_DEPENDENCY,
    service: AvailabilityService = AVAILABILITY_DEPENDENCY,
) -> AvailabilityCalendar:
    """Availability calendar of one room type."""
    if end_date < start_date:
        raise ValidationError(
            detail="end_date must not be before start_date",
            errors={"end_date": end_date.isoformat()},
        )
    if (end_date - start_date).days >= MAX_CALENDAR_DAYS:
        raise ValidationError(detail=f"A calendar covers at most {MAX_CALENDAR_DAYS} days")

    room_type, days = await service.calendar(hotel_id, room_type_id, owner_id, start_date, end_date)
    return AvailabilityCalendar(
        room_type_id=str(room_type.id),
        room_type_name=room_type.name,
        base_availability=room_type.base_availability,
        days=[CalendarDay.model_validate(day) for day in days],
    )


@router.post("/{hotel_id}/room-types/{room_type_id}/availability", response_model=AvailabilityUpdateResponse)
async def update_availability(
    hotel_id: UUID,
    room_type_id: UUID,
    updates: List[AvailabilityUpdate] = Body(..., min_length=1),
    force_cancellation: bool = Query(False, description="Cancel newest bookings to fit the new values"),
    owner_id: UUID = CALLER_DEPENDENCY,
    service: AvailabilityService = AVAILABILITY_DEPENDENCY,
) -> AvailabilityUpdateResponse:
    """
    Set availability for a batch of dates.

    Dates are applied independently. If any date has more booked rooms than
    its new value and cancellations are not forced, the response is a 409
    problem listing the conflicting dates and the outcome of every date.
    """
    results = await service.apply_updates(
        hotel_id,
        room_type_id,
        owner_id,
        updates,
        force=force_cancellation,
    )

    logger.info(
        "Availability updated",
        extra={
            "hotel_id": str(hotel_id),
            "room_type_id": str(room_type_id),
            "dates": len(results),
            "forced_cancellations": sum(len(r["cancelled_bookings"]) for r in results),
        }
    )
    return AvailabilityUpdateResponse(
        room_type_id=str(room_type_id),
        results=[AvailabilityUpdateResult(**r) for r in results],
    )


@router.get("/{hotel_id}/bookings", response_model=OwnerStayList)
async def list_hotel_bookings(
    hotel_id: UUID,
    start_date: Optional[date] = Query(None, description="Stays with a night on or after this date"),
    end_date: Optional[date] = Query(None, description="Stays with a night on or before this date"),
    room_type_id: Optional[UUID] = Query(None),
    status: Optional[HotelStayStatus] = Query(None),
    owner_id: UUID = CALLER_DEPENDENCY,
    service: AvailabilityService = AVAILABILITY_DEPENDENCY,
) -> OwnerStayList:
    """Stays booked at the caller's hotel, newest first."""
    await service.bookings.get_hotel_for_owner(hotel_id, owner_id)
    rows = await service.bookings.list_hotel_stays(
        hotel_id,
        start_date=start_date,
        end_date=end_date,
        room_type_id=room_type_id,
        status=status.value if status else None,
    )
    return OwnerStayList(
        hotel_id=str(hotel_id),
        stays=[_convert_owner_stay(stay, booking, guest) for stay, booking, guest in rows],
    )


@router.post("/{hotel_id}/bookings/{stay_id}/cancel", response_model=OwnerCancelResponse)
async def cancel_hotel_booking(
    hotel_id: UUID,
    stay_id: UUID,
    request: Optional[CancelBookingRequest] = Body(None),
    owner_id: UUID = CALLER_DEPENDENCY,
    cancellations: CancellationService = CANCELLATION_DEPENDENCY,
) -> OwnerCancelResponse:
    """Cancel one stay at the caller's hotel."""
    result = await cancellations.cancel_stay_as_owner(
        hotel_id,
        stay_id,
        owner_id,
        reason=request.reason if request else None,
    )
    guest = await cancellations.bookings.get_user_or_raise(result.booking.user_id)
    return OwnerCancelResponse(
        stay=_convert_owner_stay(result.stay, result.booking, guest),
        booking_cancelled=result.booking_cancelled,
    )
