"""Flight router: schedule verification against the flight system."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dates import utcnow
from ..core.dependencies import get_db, get_flight_gateway, resolve_caller
from ..core.exceptions import GatewayError, ValidationError
from ..schemas.booking import FlightVerification
from ..services.booking_service import BookingService
from ..services.flight_gateway import FlightGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/flights", tags=["flights"])

DB_DEPENDENCY = Depends(get_db)
CALLER_DEPENDENCY = Depends(resolve_caller)
GATEWAY_DEPENDENCY = Depends(get_flight_gateway)

CONFIRMED_FLIGHT_STATUSES = ("SCHEDULED", "CONFIRMED")


@router.get("/bookings/{flight_item_id}/verify", response_model=FlightVerification)
async def verify_flight(
    flight_item_id: UUID,
    user_id: UUID = CALLER_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
    gateway: FlightGateway = GATEWAY_DEPENDENCY,
) -> FlightVerification:
    """
    Check a booked flight's current schedule with the flight system.

    The flight system being unreachable is reported in the body with
    ``verified=false`` rather than as an error.
    """
    bookings = BookingService(db)
    item, booking = await bookings.get_flight_item_for_user(flight_item_id, user_id)
    if not item.external_booking_reference:
        raise ValidationError(detail="This flight has no booking reference with the flight system yet")

    user = await bookings.get_user_or_raise(booking.user_id)
    checked_at = utcnow()

    try:
        snapshot = await gateway.verify(item.external_booking_reference, user.last_name)
    except GatewayError as exc:
        logger.warning(
            "Flight verification unavailable",
            extra={"flight_item_id": str(flight_item_id), "error": exc.remote_message}
        )
        return FlightVerification(
            flight_item_id=str(item.id),
            booking_reference=item.external_booking_reference,
            ticket_number=item.external_ticket_number,
            status="UNAVAILABLE",
            verified=False,
            message="Flight verification is currently unavailable. Please try again later.",
            last_verified=checked_at,
        )

    flight = next((f for f in map(snapshot.find_flight, item.segment_ids or []) if f), None)
    if flight is None:
        return FlightVerification(
            flight_item_id=str(item.id),
            booking_reference=snapshot.booking_reference,
            ticket_number=snapshot.ticket_number,
            status="NOT_FOUND",
            verified=False,
            message="Flight not found in the booking held by the flight system.",
            last_verified=checked_at,
        )

    flight_status = flight.status or "UNKNOWN"
    verified = flight_status in CONFIRMED_FLIGHT_STATUSES
    return FlightVerification(
        flight_item_id=str(item.id),
        booking_reference=snapshot.booking_reference,
        ticket_number=snapshot.ticket_number,
        status=flight_status,
        verified=verified,
        departure_time=flight.departure_time,
        arrival_time=flight.arrival_time,
        origin=flight.origin,
        destination=flight.destination,
        airline=flight.airline,
        flight_number=flight.flight_number,
        message=(
            "Flight schedule is confirmed."
            if verified
            else f"Flight status is {flight_status}. Please check with the airline."
        ),
        last_verified=checked_at,
    )
