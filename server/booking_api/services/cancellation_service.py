"""Cancellation of whole bookings and of single hotel stays."""

import logging
from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import GatewayError, InvalidStateTransition, NotFoundError
from ..core.locks import InventoryLockRegistry
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingStatus, HotelStay, HotelStayStatus
from ..models.hotel import Hotel
from ..models.notification import NotificationType
from .booking_service import BookingService
from .flight_gateway import FlightGateway
from .inventory_service import InventoryLedger, lock_keys_for, stay_lock_keys
from .notification_service import EffectPublisher

logger = logging.getLogger(__name__)


@dataclass
class FlightCancellationOutcome:
    booking_reference: str
    success: bool
    error: Optional[str] = None


@dataclass
class CancellationResult:
    booking: Booking
    flight_results: list[FlightCancellationOutcome] = field(default_factory=list)


@dataclass
class StayCancellationResult:
    stay: HotelStay
    booking: Booking
    booking_cancelled: bool


def _describe_stay(stay: HotelStay) -> str:
    return (
        f"{stay.number_of_rooms} x {stay.room_type.name} at {stay.hotel.name} "
        f"from {stay.check_in_date.isoformat()} to {stay.check_out_date.isoformat()}"
    )


def _with_reason(message: str, reason: Optional[str]) -> str:
    return f"{message} Reason: {reason}" if reason else message


class CancellationService:
    """
    Reverses bookings.

    Remote flight cancellations happen before any inventory lock is taken
    and never abort the local cancellation. Inventory is released before a
    stay changes status, and notifications are emitted only after commit.
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway: FlightGateway,
        locks: InventoryLockRegistry,
        publisher: EffectPublisher,
    ):
        self.db = db
        self.gateway = gateway
        self.locks = locks
        self.publisher = publisher
        self.ledger = InventoryLedger(db)
        self.bookings = BookingService(db)

    async def cancel_booking(
        self,
        booking_id: UUID,
        user_id: Optional[UUID] = None,
        reason: Optional[str] = None,
        initiator: str = "user",
    ) -> CancellationResult:
        """
        Cancel a booking with all its hotel stays and flights.

        Args:
            booking_id: Booking to cancel
            user_id: Caller that must own the booking; None skips the check
                for cancellations forced by a hotel owner
            reason: Included in the notifications
            initiator: Metric label for who triggered the cancellation

        Raises:
            NotFoundError: Booking missing or not owned by ``user_id``
            InvalidStateTransition: Booking is not pending or confirmed
        """
        booking = await self.bookings.get_booking(booking_id)
        if booking is None or (user_id is not None and booking.user_id != user_id):
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        self._ensure_cancellable(booking)

        flight_results = await self._cancel_flights(booking)
        keys = lock_keys_for((stay.room_type_id, stay.stay_range) for stay in booking.active_stays)

        async with self.locks.hold(keys):
            try:
                booking = await self.bookings.get_booking(booking_id, for_update=True)
                self._ensure_cancellable(booking)
                await self._release_stays(booking, reason)
                booking.status = BookingStatus.CANCELLED.value
                self.publisher.queue(
                    booking.user_id,
                    _with_reason("Your booking has been cancelled.", reason),
                    NotificationType.BOOKING_CANCELLED,
                    booking.id,
                )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                self.publisher.discard()
                raise

        await self.publisher.flush()
        metrics_collector.record_booking_cancelled(initiator)

        logger.info(
            "Booking cancelled",
            extra={
                "booking_id": str(booking_id),
                "initiator": initiator,
                "flight_references": len(flight_results),
                "flight_failures": sum(1 for r in flight_results if not r.success),
            }
        )
        return CancellationResult(booking=booking, flight_results=flight_results)

    @staticmethod
    def _ensure_cancellable(booking: Booking) -> None:
        if not booking.is_cancellable:
            raise InvalidStateTransition("booking", booking.status, BookingStatus.CANCELLED.value)

    async def _cancel_flights(self, booking: Booking) -> list[FlightCancellationOutcome]:
        references = booking.flight_references
        if not references:
            return []

        user = await self.bookings.get_user_or_raise(booking.user_id)
        results = []
        for reference in references:
            try:
                await self.gateway.cancel(user.last_name, reference)
            except GatewayError as exc:
                logger.warning(
                    "Flight cancellation failed",
                    extra={
                        "booking_id": str(booking.id),
                        "booking_reference": reference,
                        "error": exc.remote_message,
                    }
                )
                results.append(FlightCancellationOutcome(reference, False, exc.remote_message))
            else:
                results.append(FlightCancellationOutcome(reference, True))
        return results

    async def _release_stays(self, booking: Booking, reason: Optional[str]) -> None:
        for stay in booking.active_stays:
            await self.ledger.release(stay.room_type_id, stay.stay_range, stay.number_of_rooms)
            stay.status = HotelStayStatus.CANCELLED.value
            self.publisher.queue(
                stay.hotel.owner_id,
                _with_reason(f"Booking for {_describe_stay(stay)} has been cancelled.", reason),
                NotificationType.BOOKING_CANCELLED,
                booking.id,
            )

    async def cancel_stay_as_owner(
        self,
        hotel_id: UUID,
        stay_id: UUID,
        owner_id: UUID,
        reason: Optional[str] = None,
    ) -> StayCancellationResult:
        """
        Hotel owner cancels one stay at their hotel.

        The parent booking is cancelled too once it has no active stay
        left. Flights are left untouched.

        Raises:
            NotFoundError: Hotel missing, or stay not at this hotel
            AuthorizationError: Caller does not own the hotel
            InvalidStateTransition: Stay already cancelled
        """
        hotel: Hotel = await self.bookings.get_hotel_for_owner(hotel_id, owner_id)

        stay = await self.db.get(HotelStay, stay_id)
        if stay is None or stay.hotel_id != hotel.id:
            raise NotFoundError(resource_type="hotel booking", resource_id=str(stay_id))
        if not stay.is_active:
            raise InvalidStateTransition("hotel booking", stay.status, HotelStayStatus.CANCELLED.value)

        async with self.locks.hold(stay_lock_keys(stay.room_type_id, stay.stay_range)):
            try:
                booking = await self.bookings.get_booking(stay.booking_id, for_update=True)
                stay = next(s for s in booking.hotel_stays if s.id == stay_id)
                if not stay.is_active:
                    raise InvalidStateTransition("hotel booking", stay.status, HotelStayStatus.CANCELLED.value)

                await self.ledger.release(stay.room_type_id, stay.stay_range, stay.number_of_rooms)
                stay.status = HotelStayStatus.CANCELLED.value
                self.publisher.queue(
                    booking.user_id,
                    _with_reason(
                        f"Your reservation for {_describe_stay(stay)} was cancelled by the hotel.",
                        reason,
                    ),
                    NotificationType.HOTEL_BOOKING_CANCELLED,
                    booking.id,
                )

                booking_cancelled = False
                if not booking.active_stays and booking.is_cancellable:
                    booking.status = BookingStatus.CANCELLED.value
                    booking_cancelled = True

                await self.db.commit()
            except Exception:
                await self.db.rollback()
                self.publisher.discard()
                raise

        await self.publisher.flush()
        metrics_collector.record_booking_cancelled("owner")

        logger.info(
            "Hotel stay cancelled by owner",
            extra={
                "hotel_id": str(hotel_id),
                "stay_id": str(stay_id),
                "booking_id": str(booking.id),
                "booking_cancelled": booking_cancelled,
            }
        )
        return StayCancellationResult(stay=stay, booking=booking, booking_cancelled=booking_cancelled)
