"""Booking queries: lookups for travelers and hotel owners."""

import logging
from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import AuthorizationError, NotFoundError
from ..models.booking import Booking, FlightItem, HotelStay
from ..models.hotel import Hotel, User

logger = logging.getLogger(__name__)


class BookingService:
    """Read-side operations over bookings and their line items."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_or_raise(self, user_id: UUID) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(resource_type="user", resource_id=str(user_id))
        return user

    async def get_booking(self, booking_id: UUID, for_update: bool = False) -> Optional[Booking]:
        """
        Load a booking with its line items, refreshing any stale copy.

        Args:
            booking_id: Booking to load
            for_update: Lock the booking row until the transaction ends
        """
        stmt = select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_booking_for_user(self, booking_id: UUID, user_id: UUID, for_update: bool = False) -> Booking:
        """
        Booking owned by ``user_id``.

        Raises:
            NotFoundError: If the booking does not exist or belongs to someone else
        """
        booking = await self.get_booking(booking_id, for_update=for_update)
        if booking is None or booking.user_id != user_id:
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return booking

    async def list_bookings_for_user(self, user_id: UUID, status: Optional[str] = None) -> list[Booking]:
        stmt = select(Booking).where(Booking.user_id == user_id)
        if status:
            stmt = stmt.where(Booking.status == status)
        stmt = stmt.order_by(Booking.created_at.desc())
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def get_hotel_for_owner(self, hotel_id: UUID, owner_id: UUID) -> Hotel:
        """
        Hotel managed by ``owner_id``.

        Raises:
            NotFoundError: If the hotel does not exist
            AuthorizationError: If the caller does not own it
        """
        hotel = await self.db.get(Hotel, hotel_id)
        if hotel is None:
            raise NotFoundError(resource_type="hotel", resource_id=str(hotel_id))
        if hotel.owner_id != owner_id:
            logger.warning(
                "Hotel access denied",
                extra={"hotel_id": str(hotel_id), "user_id": str(owner_id)}
            )
            raise AuthorizationError(detail="You do not manage this hotel")
        return hotel

    async def list_hotel_stays(
        self,
        hotel_id: UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        room_type_id: Optional[UUID] = None,
        status: Optional[str] = None,
    ) -> list[tuple[HotelStay, Booking, User]]:
        """
        Stays at a hotel, newest first.

        A date window keeps stays with at least one night inside it.
        """
        stmt = (
            select(HotelStay, Booking, User)
            .join(Booking, HotelStay.booking_id == Booking.id)
            .join(User, Booking.user_id == User.id)
            .where(HotelStay.hotel_id == hotel_id)
        )
        if start_date:
            stmt = stmt.where(HotelStay.check_out_date > start_date)
        if end_date:
            stmt = stmt.where(HotelStay.check_in_date <= end_date)
        if room_type_id:
            stmt = stmt.where(HotelStay.room_type_id == room_type_id)
        if status:
            stmt = stmt.where(HotelStay.status == status)
        stmt = stmt.order_by(HotelStay.created_at.desc(), HotelStay.id.desc())

        result = await self.db.execute(stmt)
        return [tuple(row) for row in result.all()]

    async def get_flight_item_for_user(self, flight_item_id: UUID, user_id: UUID) -> tuple[FlightItem, Booking]:
        """
        Raises:
            NotFoundError: If the flight item is missing or not the caller's
        """
        item = await self.db.get(FlightItem, flight_item_id)
        booking = await self.get_booking(item.booking_id) if item else None
        if item is None or booking is None or booking.user_id != user_id:
            raise NotFoundError(resource_type="flight booking", resource_id=str(flight_item_id))
        return item, booking
