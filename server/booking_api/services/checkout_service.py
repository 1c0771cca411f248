"""Checkout: turns a cart of hotel stays and flights into one booking.

Hotel inventory is reserved and a booking persisted before the flight
system is called. A checkout with flights therefore goes through a durable
``pending`` state:

1. Under the inventory locks, reserve every stay and commit the booking as
   ``pending`` with its stays and unreferenced flight items.
2. Book all flight segments with one gateway call, outside any transaction.
3. On success, record the references and confirm the booking. On failure,
   release the reserved inventory and cancel the booking, then report the
   gateway error.

A hotel-only checkout is confirmed in step 1.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.dates import DateRange, utcnow
from ..core.exceptions import GatewayError, InvalidStateTransition, ValidationError
from ..core.locks import InventoryLockRegistry
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingStatus, FlightItem, HotelStay, HotelStayStatus
from ..models.hotel import RoomType, User
from ..models.invoice import Invoice
from ..models.notification import NotificationType
from ..schemas.booking import CreateBookingRequest, FlightRequest
from .booking_service import BookingService
from .flight_gateway import FlightGateway, GatewayBooking, Traveler, normalize_flight_ids
from .inventory_service import InventoryLedger, lock_keys_for
from .invoice_service import InvoiceService
from .notification_service import EffectPublisher
from .payment_service import CardValidator, digits_only

logger = logging.getLogger(__name__)


@dataclass
class StayPlan:
    """A validated hotel stay request."""
    hotel_id: UUID
    room_type: RoomType
    stay: DateRange
    rooms: int

    @property
    def price_amount(self) -> int:
        return self.room_type.price_per_night_amount * self.stay.nights * self.rooms


@dataclass
class CheckoutResult:
    booking: Booking
    invoice: Optional[Invoice] = None
    gateway_booking: Optional[GatewayBooking] = None


def _parse_uuid(value: str, field: str) -> UUID:
    try:
        return UUID(value)
    except (TypeError, ValueError):
        raise ValidationError(detail=f"Invalid {field}", errors={field: f"'{value}' is not a valid ID"})


def _to_minor_units(price: Optional[float]) -> int:
    if price is None:
        return 0
    return int(round(price * 100))


class CheckoutService:
    """Creates bookings from checkout requests."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: FlightGateway,
        locks: InventoryLockRegistry,
        publisher: EffectPublisher,
        invoice_service: InvoiceService,
        card_validator: Optional[CardValidator] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.locks = locks
        self.publisher = publisher
        self.invoice_service = invoice_service
        self.card_validator = card_validator or CardValidator()
        self.ledger = InventoryLedger(db)
        self.bookings = BookingService(db)

    async def _plan_stays(self, request: CreateBookingRequest) -> list[StayPlan]:
        plans = []
        for index, stay_request in enumerate(request.hotel_stays):
            hotel_id = _parse_uuid(stay_request.hotel_id, "hotel_id")
            room_type_id = _parse_uuid(stay_request.room_type_id, "room_type_id")
            stay = DateRange(stay_request.check_in_date, stay_request.check_out_date)

            result = await self.db.execute(
                select(RoomType)
                .where(RoomType.id == room_type_id)
                .execution_options(populate_existing=True)
            )
            room_type = result.scalar_one_or_none()
            if room_type is None or room_type.hotel_id != hotel_id:
                raise ValidationError(
                    detail=f"Room type not found for hotel {hotel_id}",
                    errors={f"hotel_stays.{index}.room_type_id": str(room_type_id)},
                )
            plans.append(StayPlan(hotel_id, room_type, stay, stay_request.number_of_rooms))

        currencies = {plan.room_type.currency for plan in plans}
        if len(currencies) > 1:
            raise ValidationError(detail="All hotel stays in one booking must share a currency")
        return plans

    @staticmethod
    def _plan_flights(flights: list[FlightRequest]) -> list[list[str]]:
        segments_per_flight = []
        for index, flight in enumerate(flights):
            segments = normalize_flight_ids(flight.segment_ids)
            if not segments:
                raise ValidationError(
                    detail="No valid flight IDs found in the booking request",
                    errors={f"flights.{index}.segment_ids": "no usable flight id"},
                )
            segments_per_flight.append(segments)
        return segments_per_flight

    def _queue_confirmation(self, booking: Booking, stays: list[tuple[HotelStay, RoomType]]) -> None:
        self.publisher.queue(
            booking.user_id,
            "Your booking has been confirmed.",
            NotificationType.BOOKING_CREATED,
            booking.id,
        )
        for stay, room_type in stays:
            hotel = room_type.hotel
            self.publisher.queue(
                hotel.owner_id,
                (
                    f"New reservation at {hotel.name}: {stay.number_of_rooms} x {room_type.name} "
                    f"from {stay.check_in_date.isoformat()} to {stay.check_out_date.isoformat()}."
                ),
                NotificationType.NEW_RESERVATION,
                booking.id,
            )

    async def checkout(self, user_id: UUID, request: CreateBookingRequest) -> CheckoutResult:
        """
        Create a booking for ``user_id``.

        Raises:
            ValidationError: Empty cart, invalid payment, bad dates or room types
            InsufficientAvailability: A stay cannot be reserved; nothing is kept
            GatewayError: Flight booking failed; reserved inventory is released
        """
        if not request.hotel_stays and not request.flights:
            raise ValidationError(detail="At least one flight or hotel booking is required")

        validation = self.card_validator.validate(request.payment)
        if not validation.is_valid:
            raise ValidationError(detail="Invalid payment information", errors=validation.errors)

        user = await self.bookings.get_user_or_raise(user_id)
        plans = await self._plan_stays(request)
        flight_segments = self._plan_flights(request.flights)
        lock_keys = lock_keys_for((plan.room_type.id, plan.stay) for plan in plans)

        async with self.locks.hold(lock_keys):
            try:
                booking = await self._reserve_and_persist(user, request, plans, flight_segments, validation.card_type)
            except Exception:
                await self.db.rollback()
                self.publisher.discard()
                raise

        # Reload so every relationship of the new booking is populated
        booking = await self.bookings.get_booking(booking.id)

        gateway_booking = None
        if flight_segments:
            booking, gateway_booking = await self._book_flights(user, booking, plans, flight_segments)

        await self.publisher.flush()
        metrics_collector.record_booking_created(booking.status)

        logger.info(
            "Checkout completed",
            extra={
                "booking_id": str(booking.id),
                "user_id": str(user_id),
                "hotel_stays": len(plans),
                "flights": len(flight_segments),
                "total_price_amount": booking.total_price_amount,
            }
        )

        booking, invoice = await self._generate_invoice(booking)
        return CheckoutResult(booking=booking, invoice=invoice, gateway_booking=gateway_booking)

    async def _reserve_and_persist(
        self,
        user: User,
        request: CreateBookingRequest,
        plans: list[StayPlan],
        flight_segments: list[list[str]],
        card_type: str,
    ) -> Booking:
        booking = Booking(
            user_id=user.id,
            status=BookingStatus.PENDING.value if flight_segments else BookingStatus.CONFIRMED.value,
            currency=plans[0].room_type.currency if plans else "USD",
            payment_card_type=card_type,
            payment_card_last4=digits_only(request.payment.card_number)[-4:],
            payment_card_expiry=request.payment.card_expiry,
        )
        self.db.add(booking)

        stays = []
        total = 0
        for plan in plans:
            await self.ledger.reserve(plan.room_type.id, plan.stay, plan.rooms)
            stay = HotelStay(
                booking=booking,
                hotel=plan.room_type.hotel,
                room_type=plan.room_type,
                check_in_date=plan.stay.start,
                check_out_date=plan.stay.end,
                number_of_rooms=plan.rooms,
                total_price_amount=plan.price_amount,
                status=HotelStayStatus.CONFIRMED.value,
            )
            self.db.add(stay)
            stays.append((stay, plan.room_type))
            total += plan.price_amount

        for flight, segments in zip(request.flights, flight_segments):
            self.db.add(FlightItem(
                booking=booking,
                segment_ids=segments,
                departure_airport=flight.origin,
                arrival_airport=flight.destination,
                departure_time=flight.departure_time,
                arrival_time=flight.arrival_time,
                passengers=flight.passengers,
            ))

        booking.total_price_amount = total
        if not flight_segments:
            await self.db.flush()
            self._queue_confirmation(booking, stays)

        await self.db.commit()
        return booking

    async def _book_flights(
        self,
        user: User,
        booking: Booking,
        plans: list[StayPlan],
        flight_segments: list[list[str]],
    ) -> tuple[Booking, GatewayBooking]:
        booking_id = booking.id
        traveler = Traveler(
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            passport_number=user.passport_number or settings.default_passport_number,
        )
        all_segments = normalize_flight_ids(s for segments in flight_segments for s in segments)

        try:
            gateway_booking = await self.gateway.book(traveler, all_segments)
        except GatewayError as exc:
            logger.warning(
                "Flight booking failed, compensating checkout",
                extra={"booking_id": str(booking_id), "error": exc.remote_message}
            )
            await self.compensate(booking_id, plans)
            raise

        try:
            booking = await self._confirm(booking_id, gateway_booking)
        except Exception:
            await self.db.rollback()
            self.publisher.discard()
            raise
        return booking, gateway_booking

    async def _confirm(self, booking_id: UUID, gateway_booking: GatewayBooking) -> Booking:
        booking = await self.bookings.get_booking(booking_id, for_update=True)
        if booking is None or booking.status != BookingStatus.PENDING.value:
            current = booking.status if booking else "missing"
            logger.error(
                "Booking left pending state during flight booking",
                extra={
                    "booking_id": str(booking_id),
                    "status": current,
                    "booking_reference": gateway_booking.booking_reference,
                }
            )
            await self._cancel_remote(gateway_booking.booking_reference, booking_id)
            raise InvalidStateTransition(
                "booking",
                current,
                BookingStatus.CONFIRMED.value,
                detail="Booking was cancelled while its flights were being booked",
            )

        flights_total = 0
        for item in booking.flight_items:
            matches = [f for f in (gateway_booking.find_flight(s) for s in item.segment_ids) if f]
            item.external_booking_reference = gateway_booking.booking_reference
            item.external_ticket_number = gateway_booking.ticket_number
            item.price_amount = sum(_to_minor_units(f.price) for f in matches)
            if matches:
                first = matches[0]
                item.details = first.raw
                item.airline = first.airline
                item.flight_number = first.flight_number
                item.departure_airport = item.departure_airport or first.origin
                item.arrival_airport = item.arrival_airport or matches[-1].destination
            flights_total += item.price_amount

        booking.total_price_amount += flights_total
        booking.status = BookingStatus.CONFIRMED.value
        self._queue_confirmation(booking, [(stay, stay.room_type) for stay in booking.hotel_stays])
        await self.db.commit()
        return booking

    async def _cancel_remote(self, booking_reference: str, booking_id: UUID) -> None:
        user_booking = await self.bookings.get_booking(booking_id)
        if user_booking is None:
            return
        user = await self.bookings.get_user_or_raise(user_booking.user_id)
        try:
            await self.gateway.cancel(user.last_name, booking_reference)
        except GatewayError as exc:
            logger.error(
                "Could not cancel orphaned flight booking",
                extra={"booking_reference": booking_reference, "error": exc.remote_message}
            )

    async def compensate(self, booking_id: UUID, plans: Optional[list[StayPlan]] = None) -> bool:
        """
        Release a pending booking's inventory and cancel it.

        Failures are logged and reported through the return value so that
        the error that triggered compensation is the one surfaced.
        """
        try:
            booking = await self.bookings.get_booking(booking_id)
            if booking is None:
                return False
            keys = lock_keys_for((stay.room_type_id, stay.stay_range) for stay in booking.active_stays)

            async with self.locks.hold(keys):
                booking = await self.bookings.get_booking(booking_id, for_update=True)
                if booking is None or booking.status != BookingStatus.PENDING.value:
                    return False
                for stay in booking.active_stays:
                    await self.ledger.release(stay.room_type_id, stay.stay_range, stay.number_of_rooms)
                    stay.status = HotelStayStatus.CANCELLED.value
                booking.status = BookingStatus.CANCELLED.value
                await self.db.commit()
        except Exception:
            await self.db.rollback()
            metrics_collector.record_compensation("failed")
            logger.exception(
                "Checkout compensation failed",
                extra={"booking_id": str(booking_id)}
            )
            return False

        metrics_collector.record_compensation("released")
        logger.info("Checkout compensated", extra={"booking_id": str(booking_id)})
        return True

    async def expire_stale_checkouts(self, now: Optional[datetime] = None) -> int:
        """
        Compensate pending bookings older than the checkout TTL.

        These are checkouts interrupted between reserving inventory and
        recording the flight booking. Their flight segments are logged for
        reconciliation with the airline.
        """
        cutoff = (now or utcnow()) - timedelta(seconds=settings.pending_checkout_ttl_seconds)
        result = await self.db.execute(
            select(Booking.id).where(
                Booking.status == BookingStatus.PENDING.value,
                Booking.created_at < cutoff,
            )
        )
        stale_ids = list(result.scalars())

        expired = 0
        for booking_id in stale_ids:
            booking = await self.bookings.get_booking(booking_id)
            logger.warning(
                "Expiring stale pending checkout",
                extra={
                    "booking_id": str(booking_id),
                    "segments": [s for item in booking.flight_items for s in item.segment_ids],
                }
            )
            if await self.compensate(booking_id):
                expired += 1
        return expired

    async def _generate_invoice(self, booking: Booking) -> tuple[Booking, Optional[Invoice]]:
        booking_id = booking.id
        try:
            invoice = await self.invoice_service.ensure_invoice(booking)
        except Exception:
            await self.db.rollback()
            logger.exception(
                "Invoice generation failed",
                extra={"booking_id": str(booking_id)}
            )
            return await self.bookings.get_booking(booking_id), None
        return booking, invoice
