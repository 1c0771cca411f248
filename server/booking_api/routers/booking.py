"""Booking router for checkout, listing and cancellation."""

import logging
from typing import Any, Awaitable, Callable, List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import (
    get_cancellation_service,
    get_checkout_service,
    get_db,
    get_idempotency_key,
    get_invoice_generator,
    resolve_caller,
)
from ..core.exceptions import ProblemDetailsException
from ..models.booking import Booking as BookingModel
from ..models.booking import FlightItem as FlightItemModel
from ..models.booking import HotelStay as HotelStayModel
from ..schemas.booking import (
    Booking,
    CancelBookingRequest,
    CancelBookingResponse,
    CreateBookingRequest,
    CreateBookingResponse,
    FlightCancellationResult,
    FlightItem,
    GatewayBookingSummary,
    HotelStay,
    Invoice,
    PaymentSummary,
)
from ..schemas.common import Money
from ..services.booking_service import BookingService
from ..services.cancellation_service import CancellationService
from ..services.checkout_service import CheckoutService
from ..services.flight_gateway import GatewayBooking
from ..services.idempotency_service import IdempotencyService
from ..services.invoice_service import InvoiceGenerator, InvoiceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/bookings", tags=["bookings"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
CALLER_DEPENDENCY = Depends(resolve_caller)
IDEMPOTENCY_KEY_DEPENDENCY = Depends(get_idempotency_key)
CHECKOUT_DEPENDENCY = Depends(get_checkout_service)
CANCELLATION_DEPENDENCY = Depends(get_cancellation_service)
INVOICE_GENERATOR_DEPENDENCY = Depends(get_invoice_generator)


def _convert_stay_to_schema(stay: HotelStayModel, currency: str) -> HotelStay:
    """Convert hotel stay model to schema."""
    return HotelStay(
        id=str(stay.id),
        hotel_id=str(stay.hotel_id),
        hotel_name=stay.hotel.name if stay.hotel else None,
        room_type_id=str(stay.room_type_id),
        room_type_name=stay.room_type.name if stay.room_type else None,
        check_in_date=stay.check_in_date,
        check_out_date=stay.check_out_date,
        nights=stay.stay_range.nights,
        number_of_rooms=stay.number_of_rooms,
        total_price=Money(amount=stay.total_price_amount, currency=currency),
        status=stay.status,
    )


def _convert_flight_to_schema(item: FlightItemModel, currency: str) -> FlightItem:
    """Convert flight line item model to schema."""
    return FlightItem(
        id=str(item.id),
        segment_ids=list(item.segment_ids or []),
        booking_reference=item.external_booking_reference,
        ticket_number=item.external_ticket_number,
        departure_airport=item.departure_airport,
        arrival_airport=item.arrival_airport,
        departure_time=item.departure_time,
        arrival_time=item.arrival_time,
        airline=item.airline,
        flight_number=item.flight_number,
        passengers=item.passengers,
        price=Money(amount=item.price_amount, currency=currency),
    )


def _convert_booking_to_schema(booking: BookingModel) -> Booking:
    """Convert booking model to schema."""
    return Booking(
        id=str(booking.id),
        user_id=str(booking.user_id),
        status=booking.status,
        total_price=Money(amount=booking.total_price_amount, currency=booking.currency),
        payment=PaymentSummary(
            card_type=booking.payment_card_type,
            card_last4=booking.payment_card_last4,
            card_expiry=booking.payment_card_expiry,
        ),
        hotel_stays=[_convert_stay_to_schema(s, booking.currency) for s in booking.hotel_stays],
        flights=[_convert_flight_to_schema(f, booking.currency) for f in booking.flight_items],
        invoice=Invoice.model_validate(booking.invoice) if booking.invoice else None,
        created_at=booking.created_at,
        updated_at=booking.updated_at,
    )


def _convert_gateway_booking(gateway_booking: Optional[GatewayBooking]) -> Optional[GatewayBookingSummary]:
    if gateway_booking is None:
        return None
    return GatewayBookingSummary(
        booking_reference=gateway_booking.booking_reference,
        ticket_number=gateway_booking.ticket_number,
        flights=[flight.raw for flight in gateway_booking.flights],
    )


async def _handle_idempotent_operation(
    method: str,
    idempotency_key: Optional[str],
    request_body: dict[str, Any],
    operation_func: Callable[[], Awaitable[tuple[int, dict[str, Any]]]],
    db: AsyncSession,
) -> JSONResponse:
    """Run ``operation_func`` once per idempotency key, replaying stored responses."""
    if not idempotency_key:
        status_code, response_body = await operation_func()
        return JSONResponse(status_code=status_code, content=response_body)

    idempotency_service = IdempotencyService(db)

    cached_response = await idempotency_service.check_idempotency(
        idempotency_key=idempotency_key,
        method=method,
        request_body=request_body
    )
    if cached_response:
        status_code, response_body = cached_response
        return JSONResponse(
            status_code=status_code,
            content=response_body,
            headers={"Idempotent-Replayed": "true"}
        )

    try:
        status_code, response_body = await operation_func()
    except ProblemDetailsException as e:
        # Retryable failures stay retryable under the same key
        if not e.problem_details.get("retryable"):
            await idempotency_service.store_response(
                idempotency_key=idempotency_key,
                method=method,
                request_body=request_body,
                status_code=e.status_code,
                response_body=e.problem_details
            )
        raise

    await idempotency_service.store_response(
        idempotency_key=idempotency_key,
        method=method,
        request_body=request_body,
        status_code=status_code,
        response_body=response_body
    )
    return JSONResponse(status_code=status_code, content=response_body)


@router.post("", response_model=CreateBookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    request: CreateBookingRequest,
    user_id: UUID = CALLER_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
    checkout: CheckoutService = CHECKOUT_DEPENDENCY,
    idempotency_key: Optional[str] = IDEMPOTENCY_KEY_DEPENDENCY,
) -> JSONResponse:
    """
    Check out a cart of hotel stays and flights as one booking.

    Repeating a request with the same Idempotency-Key header replays the
    stored response.
    """
    async def operation() -> tuple[int, dict[str, Any]]:
        result = await checkout.checkout(user_id, request)
        response = CreateBookingResponse(
            booking=_convert_booking_to_schema(result.booking),
            invoice=Invoice.model_validate(result.invoice) if result.invoice else None,
            flight_booking=_convert_gateway_booking(result.gateway_booking),
        )
        return status.HTTP_201_CREATED, response.model_dump(mode="json")

    return await _handle_idempotent_operation(
        method="POST /v1/bookings",
        idempotency_key=idempotency_key,
        request_body={"user_id": str(user_id), **request.model_dump(mode="json")},
        operation_func=operation,
        db=db
    )


@router.get("", response_model=List[Booking])
async def list_bookings(
    status_filter: Optional[str] = Query(None, alias="status", description="Only bookings in this status"),
    user_id: UUID = CALLER_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
) -> List[Booking]:
    """List the caller's bookings, newest first."""
    bookings = await BookingService(db).list_bookings_for_user(user_id, status=status_filter)
    return [_convert_booking_to_schema(b) for b in bookings]


@router.get("/{booking_id}", response_model=Booking)
async def get_booking(
    booking_id: UUID,
    user_id: UUID = CALLER_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
) -> Booking:
    booking = await BookingService(db).get_booking_for_user(booking_id, user_id)
    return _convert_booking_to_schema(booking)


@router.post("/{booking_id}/cancel", response_model=CancelBookingResponse)
async def cancel_booking(
    booking_id: UUID,
    request: Optional[CancelBookingRequest] = Body(None),
    user_id: UUID = CALLER_DEPENDENCY,
    cancellations: CancellationService = CANCELLATION_DEPENDENCY,
) -> CancelBookingResponse:
    """
    Cancel the caller's booking.

    Flight cancellations are attempted for every booking reference; their
    individual outcomes are reported without failing the request.
    """
    result = await cancellations.cancel_booking(
        booking_id,
        user_id=user_id,
        reason=request.reason if request else None,
    )
    return CancelBookingResponse(
        booking=_convert_booking_to_schema(result.booking),
        flight_results=[
            FlightCancellationResult(
                booking_reference=r.booking_reference,
                success=r.success,
                error=r.error,
            )
            for r in result.flight_results
        ],
    )


@router.get("/{booking_id}/invoice", response_model=Invoice)
async def get_invoice(
    booking_id: UUID,
    user_id: UUID = CALLER_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
    generator: InvoiceGenerator = INVOICE_GENERATOR_DEPENDENCY,
) -> Invoice:
    """Return the booking's invoice, generating it if checkout could not."""
    booking = await BookingService(db).get_booking_for_user(booking_id, user_id)
    invoice = await InvoiceService(db, generator).ensure_invoice(booking)
    return Invoice.model_validate(invoice)
