"""Owner availability updates, with optional forced cancellation of bookings."""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import AvailabilityConflict, NotFoundError, ProblemDetailsException
from ..core.locks import InventoryLockRegistry
from ..core.observability import metrics_collector
from ..models.booking import ACTIVE_STAY_STATUSES, HotelStay
from ..models.hotel import RoomType
from ..schemas.inventory import AvailabilityUpdate
from .booking_service import BookingService
from .cancellation_service import CancellationService
from .inventory_service import CalendarDay, InventoryLedger

logger = logging.getLogger(__name__)

FORCED_CANCELLATION_REASON = "Cancelled because of availability changes."


@dataclass(frozen=True)
class Candidate:
    """An active stay occupying the date being reduced."""
    stay_id: UUID
    booking_id: UUID
    rooms: int
    created_at: datetime

    def as_conflict_entry(self) -> dict[str, Any]:
        return {
            "bookingId": str(self.booking_id),
            "stayId": str(self.stay_id),
            "rooms": self.rooms,
            "createdAt": self.created_at.isoformat(),
        }


def select_bookings_to_cancel(candidates: Iterable[Candidate], deficit: int) -> list[Candidate]:
    """
    Pick stays to cancel, in the given (newest first) order, until their
    rooms cover ``deficit``.
    """
    selected: list[Candidate] = []
    if deficit <= 0:
        return selected

    freed = 0
    for candidate in candidates:
        selected.append(candidate)
        freed += candidate.rooms
        if freed >= deficit:
            break
    return selected


class AvailabilityService:
    """
    Applies hotel owner availability changes date by date.

    Each date commits on its own. A reduction below the booked count is a
    conflict unless ``force`` is set, in which case the newest bookings on
    that date are cancelled until the new value fits.
    """

    def __init__(
        self,
        db: AsyncSession,
        locks: InventoryLockRegistry,
        cancellations: CancellationService,
    ):
        self.db = db
        self.locks = locks
        self.cancellations = cancellations
        self.ledger = InventoryLedger(db)
        self.bookings = BookingService(db)

    async def get_owned_room_type(self, hotel_id: UUID, room_type_id: UUID, owner_id: UUID) -> RoomType:
        """
        Raises:
            NotFoundError: Hotel or room type missing, or room type of another hotel
            AuthorizationError: Caller does not own the hotel
        """
        await self.bookings.get_hotel_for_owner(hotel_id, owner_id)
        room_type = await self.db.get(RoomType, room_type_id)
        if room_type is None or room_type.hotel_id != hotel_id:
            raise NotFoundError(resource_type="room type", resource_id=str(room_type_id))
        return room_type

    async def calendar(
        self, hotel_id: UUID, room_type_id: UUID, owner_id: UUID, start: date, end: date
    ) -> tuple[RoomType, list[CalendarDay]]:
        room_type = await self.get_owned_room_type(hotel_id, room_type_id, owner_id)
        days = await self.ledger.calendar(room_type.id, start, end)
        return room_type, days

    async def affected_candidates(self, room_type_id: UUID, day: date) -> list[Candidate]:
        """Active stays occupying ``day``, newest first."""
        result = await self.db.execute(
            select(HotelStay.id, HotelStay.booking_id, HotelStay.number_of_rooms, HotelStay.created_at)
            .where(
                HotelStay.room_type_id == room_type_id,
                HotelStay.status.in_(ACTIVE_STAY_STATUSES),
                HotelStay.check_in_date <= day,
                HotelStay.check_out_date > day,
            )
            .order_by(HotelStay.created_at.desc(), HotelStay.id.desc())
        )
        return [Candidate(*row) for row in result.all()]

    async def apply_updates(
        self,
        hotel_id: UUID,
        room_type_id: UUID,
        owner_id: UUID,
        updates: list[AvailabilityUpdate],
        force: bool = False,
    ) -> list[dict[str, Any]]:
        """
        Apply a batch of ``(date, available_rooms)`` updates.

        Returns:
            One result per update, in request order

        Raises:
            AvailabilityConflict: Some dates were left unchanged because
                bookings exceed the new value and ``force`` is not set;
                the other dates of the batch are already applied
        """
        room_type = await self.get_owned_room_type(hotel_id, room_type_id, owner_id)
        room_type_id = room_type.id

        results: list[dict[str, Any]] = []
        conflicts: list[dict[str, Any]] = []
        for update in updates:
            result, conflict = await self._apply_one(room_type_id, update, force)
            results.append(result)
            if conflict:
                conflicts.append(conflict)

        if conflicts:
            metrics_collector.record_availability_conflict()
            logger.info(
                "Availability update conflicts",
                extra={
                    "room_type_id": str(room_type_id),
                    "conflicting_dates": [c["date"] for c in conflicts],
                }
            )
            raise AvailabilityConflict(conflicts, results)

        return results

    async def _apply_one(
        self, room_type_id: UUID, update: AvailabilityUpdate, force: bool
    ) -> tuple[dict[str, Any], Optional[dict[str, Any]]]:
        day = update.date
        requested = update.available_rooms

        # The new value is written before any cancellation so that rooms they
        # free cannot be taken by a concurrent checkout.
        async with self.locks.hold([(room_type_id, day)]):
            try:
                booked = await self.ledger.get_booked_count(room_type_id, day)
                deficit = booked - requested
                selected: list[Candidate] = []
                if deficit > 0:
                    selected = select_bookings_to_cancel(
                        await self.affected_candidates(room_type_id, day), deficit
                    )
                    if not force:
                        result = {
                            "date": day.isoformat(),
                            "status": "conflict",
                            "available_rooms": await self.ledger.get_availability(room_type_id, day),
                            "booked_rooms": booked,
                            "deficit": deficit,
                            "cancelled_bookings": [],
                        }
                        conflict = {
                            "date": day.isoformat(),
                            "existingBookings": booked,
                            "requestedAvailability": requested,
                            "deficit": deficit,
                            "affectedBookings": [c.as_conflict_entry() for c in selected],
                        }
                        return result, conflict

                record = await self.ledger.force_set(room_type_id, day, requested)
                booked_after = record.booked_rooms
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        cancelled: list[dict[str, Any]] = []
        if selected:
            # Cancellation takes the date's lock itself
            cancelled = await self._cancel_selected(selected)
            booked_after = await self.ledger.get_booked_count(room_type_id, day)

        return {
            "date": day.isoformat(),
            "status": "updated",
            "available_rooms": requested,
            "booked_rooms": booked_after,
            "deficit": max(0, deficit),
            "cancelled_bookings": cancelled,
        }, None

    async def _cancel_selected(self, selected: list[Candidate]) -> list[dict[str, Any]]:
        outcomes = []
        done: set[UUID] = set()
        for candidate in selected:
            if candidate.booking_id in done:
                continue
            done.add(candidate.booking_id)
            try:
                await self.cancellations.cancel_booking(
                    candidate.booking_id,
                    reason=FORCED_CANCELLATION_REASON,
                    initiator="forced",
                )
            except ProblemDetailsException as exc:
                logger.warning(
                    "Forced cancellation failed",
                    extra={"booking_id": str(candidate.booking_id), "code": exc.code}
                )
                outcomes.append({
                    "booking_id": str(candidate.booking_id),
                    "stay_id": str(candidate.stay_id),
                    "rooms": candidate.rooms,
                    "success": False,
                    "error": exc.problem_details.get("detail"),
                })
                continue

            metrics_collector.record_forced_cancellation()
            outcomes.append({
                "booking_id": str(candidate.booking_id),
                "stay_id": str(candidate.stay_id),
                "rooms": candidate.rooms,
                "success": True,
                "error": None,
            })
        return outcomes
