"""Inventory ledger: per-room-type, per-date availability records."""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import delete, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import is_postgres
from ..core.dates import DateRange
from ..core.exceptions import InsufficientAvailability, NotFoundError
from ..core.observability import metrics_collector
from ..models.booking import ACTIVE_STAY_STATUSES, HotelStay
from ..models.hotel import RoomType
from ..models.inventory import RoomAvailability

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalendarDay:
    """One day of a room type's availability calendar."""
    date: date
    available_rooms: int
    booked_rooms: int
    remaining_rooms: int
    is_manually_set: bool


def stay_lock_keys(room_type_id: UUID, stay: DateRange) -> list[tuple[UUID, date]]:
    """Keys of the inventory locks a stay needs."""
    return [(room_type_id, day) for day in stay]


class InventoryLedger:
    """
    Reads and mutates room availability.

    The ledger never commits: callers own the transaction and hold the
    inventory locks for the keys they touch. ``reserve`` and ``release``
    lock each record with ``SELECT ... FOR UPDATE`` (plus an advisory lock
    on PostgreSQL) and create missing records on first touch.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_room_type(self, room_type_id: UUID) -> RoomType:
        room_type = await self.db.get(RoomType, room_type_id)
        if room_type is None:
            raise NotFoundError(resource_type="room type", resource_id=str(room_type_id))
        return room_type

    async def _get_record(self, room_type_id: UUID, day: date, for_update: bool = False) -> Optional[RoomAvailability]:
        stmt = select(RoomAvailability).where(
            RoomAvailability.room_type_id == room_type_id,
            RoomAvailability.day == day,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_availability(self, room_type_id: UUID, day: date) -> int:
        """Owner-set availability for the date, else the room type's base availability."""
        record = await self._get_record(room_type_id, day)
        if record is not None:
            return record.available_rooms
        room_type = await self.get_room_type(room_type_id)
        return room_type.base_availability

    async def get_booked_count(self, room_type_id: UUID, day: date) -> int:
        """
        Rooms held on ``day`` by active stays.

        A stay occupies its check-in date up to, but not including, its
        check-out date.
        """
        stmt = select(func.coalesce(func.sum(HotelStay.number_of_rooms), 0)).where(
            HotelStay.room_type_id == room_type_id,
            HotelStay.status.in_(ACTIVE_STAY_STATUSES),
            HotelStay.check_in_date <= day,
            HotelStay.check_out_date > day,
        )
        result = await self.db.execute(stmt)
        return int(result.scalar_one())

    async def get_free_rooms(self, room_type_id: UUID, day: date) -> int:
        """Rooms that a new booking could still take on ``day``."""
        record = await self._get_record(room_type_id, day)
        if record is not None:
            return record.free_rooms
        availability = await self.get_availability(room_type_id, day)
        booked = await self.get_booked_count(room_type_id, day)
        return max(0, availability - booked)

    async def _lock_record(self, room_type: RoomType, day: date) -> RoomAvailability:
        if is_postgres(self.db):
            # Released at transaction end
            await self.db.execute(
                text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                {"key": f"{room_type.id}:{day.isoformat()}"}
            )

        record = await self._get_record(room_type.id, day, for_update=True)
        if record is None:
            # Seed from the stays as they stand in this transaction
            await self.db.flush()
            record = RoomAvailability(
                room_type_id=room_type.id,
                day=day,
                available_rooms=room_type.base_availability,
                booked_rooms=await self.get_booked_count(room_type.id, day),
            )
            self.db.add(record)
            await self.db.flush()
        return record

    async def reserve(self, room_type_id: UUID, stay: DateRange, rooms: int) -> None:
        """
        Take ``rooms`` rooms on every night of ``stay``.

        Every date is checked before any is changed, so a failure leaves
        the ledger untouched.

        Raises:
            InsufficientAvailability: naming the first date without enough rooms
        """
        room_type = await self.get_room_type(room_type_id)
        records = [await self._lock_record(room_type, day) for day in stay]

        for record in records:
            if record.free_rooms < rooms:
                metrics_collector.record_reservation_rejected()
                logger.info(
                    "Reservation rejected - insufficient availability",
                    extra={
                        "room_type_id": str(room_type_id),
                        "date": record.day.isoformat(),
                        "requested": rooms,
                        "available": record.free_rooms,
                    }
                )
                raise InsufficientAvailability(
                    room_type_id=str(room_type_id),
                    day=record.day,
                    requested=rooms,
                    available=record.free_rooms,
                )

        for record in records:
            record.booked_rooms += rooms
        await self.db.flush()

        logger.debug(
            "Reserved rooms",
            extra={
                "room_type_id": str(room_type_id),
                "check_in": stay.start.isoformat(),
                "check_out": stay.end.isoformat(),
                "rooms": rooms,
            }
        )

    async def release(self, room_type_id: UUID, stay: DateRange, rooms: int) -> None:
        """Give back ``rooms`` rooms on every night of ``stay``."""
        room_type = await self.get_room_type(room_type_id)
        for day in stay:
            record = await self._lock_record(room_type, day)
            if record.booked_rooms < rooms:
                logger.warning(
                    "Release exceeds booked rooms, clamping at zero",
                    extra={
                        "room_type_id": str(room_type_id),
                        "date": day.isoformat(),
                        "booked_rooms": record.booked_rooms,
                        "released": rooms,
                    }
                )
            record.booked_rooms = max(0, record.booked_rooms - rooms)
        await self.db.flush()

        logger.debug(
            "Released rooms",
            extra={
                "room_type_id": str(room_type_id),
                "check_in": stay.start.isoformat(),
                "check_out": stay.end.isoformat(),
                "rooms": rooms,
            }
        )

    async def force_set(self, room_type_id: UUID, day: date, available_rooms: int) -> RoomAvailability:
        """
        Replace the record for ``day`` with an owner-chosen availability.

        The booked counter is recomputed from the active stays. No booking
        is cancelled here.
        """
        await self.db.flush()
        await self.db.execute(
            delete(RoomAvailability).where(
                RoomAvailability.room_type_id == room_type_id,
                RoomAvailability.day == day,
            )
        )
        record = RoomAvailability(
            room_type_id=room_type_id,
            day=day,
            available_rooms=available_rooms,
            booked_rooms=await self.get_booked_count(room_type_id, day),
        )
        self.db.add(record)
        await self.db.flush()

        logger.info(
            "Availability set",
            extra={
                "room_type_id": str(room_type_id),
                "date": day.isoformat(),
                "available_rooms": available_rooms,
                "booked_rooms": record.booked_rooms,
            }
        )
        return record

    async def calendar(self, room_type_id: UUID, start: date, end: date) -> list[CalendarDay]:
        """Availability for every date from ``start`` to ``end`` inclusive."""
        room_type = await self.get_room_type(room_type_id)

        result = await self.db.execute(
            select(RoomAvailability).where(
                RoomAvailability.room_type_id == room_type_id,
                RoomAvailability.day >= start,
                RoomAvailability.day <= end,
            )
        )
        records = {record.day: record for record in result.scalars()}

        days = []
        for day in DateRange(start, end + timedelta(days=1)):
            record = records.get(day)
            available = record.available_rooms if record else room_type.base_availability
            booked = await self.get_booked_count(room_type_id, day)
            days.append(CalendarDay(
                date=day,
                available_rooms=available,
                booked_rooms=booked,
                remaining_rooms=max(0, available - booked),
                is_manually_set=record is not None,
            ))
        return days


def lock_keys_for(stays: Iterable[tuple[UUID, DateRange]]) -> list[tuple[UUID, date]]:
    """Lock keys covering several ``(room_type_id, stay)`` pairs."""
    keys: list[tuple[UUID, date]] = []
    for room_type_id, stay in stays:
        keys.extend(stay_lock_keys(room_type_id, stay))
    return keys
