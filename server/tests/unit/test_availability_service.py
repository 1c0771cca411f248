"""Tests for owner availability updates and forced cancellations."""

from datetime import date, datetime, timedelta
from uuid import uuid4

import pytest

from booking_api.core.exceptions import (
    AuthorizationError,
    AvailabilityConflict,
    InsufficientAvailability,
    NotFoundError,
)
from booking_api.models import BookingStatus
from booking_api.models.notification import NotificationType
from booking_api.schemas.inventory import AvailabilityUpdate
from booking_api.services.availability_service import (
    FORCED_CANCELLATION_REASON,
    Candidate,
    select_bookings_to_cancel,
)
from booking_api.services.inventory_service import InventoryLedger

from conftest import checkout_request, stay_request

JUNE_1 = date(2024, 6, 1)
JUNE_2 = date(2024, 6, 2)


def _candidate(rooms: int, minutes: int) -> Candidate:
    return Candidate(
        stay_id=uuid4(),
        booking_id=uuid4(),
        rooms=rooms,
        created_at=datetime(2024, 5, 1, 12, 0) + timedelta(minutes=minutes),
    )


class TestSelectBookingsToCancel:

    def test_newest_first_until_deficit_covered(self):
        t1, t2, t3 = _candidate(1, 1), _candidate(1, 2), _candidate(1, 3)
        newest_first = [t3, t2, t1]

        assert select_bookings_to_cancel(newest_first, 1) == [t3]
        assert select_bookings_to_cancel(newest_first, 2) == [t3, t2]

    def test_large_booking_covers_deficit_alone(self):
        big, small = _candidate(3, 2), _candidate(1, 1)
        assert select_bookings_to_cancel([big, small], 2) == [big]

    def test_overshoot_is_allowed(self):
        first, second = _candidate(1, 2), _candidate(2, 1)
        assert select_bookings_to_cancel([first, second], 2) == [first, second]

    def test_no_deficit_selects_nothing(self):
        assert select_bookings_to_cancel([_candidate(1, 1)], 0) == []
        assert select_bookings_to_cancel([_candidate(1, 1)], -2) == []

    def test_not_enough_candidates_selects_all(self):
        candidates = [_candidate(1, 2), _candidate(1, 1)]
        assert select_bookings_to_cancel(candidates, 5) == candidates


async def _book_single_rooms(checkout_service, world, count: int) -> list:
    bookings = []
    for _ in range(count):
        request = checkout_request(stays=[stay_request(world, JUNE_1, JUNE_2)])
        result = await checkout_service.checkout(world.traveler.id, request)
        bookings.append(result.booking)
    return bookings


class TestApplyUpdates:

    @pytest.mark.asyncio
    async def test_raise_availability(self, availability_service, test_session, world):
        results = await availability_service.apply_updates(
            world.hotel.id,
            world.room_type.id,
            world.owner.id,
            [AvailabilityUpdate(date=JUNE_1, available_rooms=8)],
        )

        assert results[0]["status"] == "updated"
        assert results[0]["available_rooms"] == 8
        assert await InventoryLedger(test_session).get_free_rooms(world.room_type.id, JUNE_1) == 8

    @pytest.mark.asyncio
    async def test_reduction_below_bookings_conflicts(self, availability_service, checkout_service, test_session, world):
        bookings = await _book_single_rooms(checkout_service, world, 5)

        with pytest.raises(AvailabilityConflict) as exc_info:
            await availability_service.apply_updates(
                world.hotel.id,
                world.room_type.id,
                world.owner.id,
                [AvailabilityUpdate(date=JUNE_1, available_rooms=2)],
            )

        body = exc_info.value.problem_details
        assert exc_info.value.status_code == 409
        assert body["code"] == "AVAILABILITY_CONFLICT"
        assert body["date"] == "2024-06-01"
        assert body["existingBookings"] == 5
        assert body["requestedAvailability"] == 2
        assert body["deficit"] == 3
        affected = [entry["bookingId"] for entry in body["affectedBookings"]]
        assert affected == [str(b.id) for b in reversed(bookings[2:])]

        # Nothing changed
        assert await InventoryLedger(test_session).get_availability(world.room_type.id, JUNE_1) == 5
        for booking in bookings:
            refreshed = await availability_service.bookings.get_booking(booking.id)
            assert refreshed.status == BookingStatus.CONFIRMED.value

    @pytest.mark.asyncio
    async def test_forced_reduction_cancels_newest(
        self, availability_service, checkout_service, sink, test_session, world
    ):
        bookings = await _book_single_rooms(checkout_service, world, 5)
        sink.effects.clear()

        results = await availability_service.apply_updates(
            world.hotel.id,
            world.room_type.id,
            world.owner.id,
            [AvailabilityUpdate(date=JUNE_1, available_rooms=2)],
            force=True,
        )

        result = results[0]
        assert result["status"] == "updated"
        assert result["available_rooms"] == 2
        assert result["booked_rooms"] == 2
        assert result["deficit"] == 3
        cancelled_ids = [entry["booking_id"] for entry in result["cancelled_bookings"]]
        assert cancelled_ids == [str(b.id) for b in reversed(bookings[2:])]
        assert all(entry["success"] for entry in result["cancelled_bookings"])

        statuses = []
        for booking in bookings:
            refreshed = await availability_service.bookings.get_booking(booking.id)
            statuses.append(refreshed.status)
        assert statuses == ["confirmed", "confirmed", "cancelled", "cancelled", "cancelled"]

        ledger = InventoryLedger(test_session)
        assert await ledger.get_availability(world.room_type.id, JUNE_1) == 2
        assert await ledger.get_booked_count(world.room_type.id, JUNE_1) == 2
        assert await ledger.get_free_rooms(world.room_type.id, JUNE_1) == 0

        guest_notices = sink.for_user(world.traveler.id, NotificationType.BOOKING_CANCELLED)
        assert len(guest_notices) == 3
        assert all(FORCED_CANCELLATION_REASON in n.message for n in guest_notices)

    @pytest.mark.asyncio
    async def test_checkout_during_forced_reduction_cannot_take_freed_rooms(
        self, availability_service, checkout_service, test_session, world
    ):
        await _book_single_rooms(checkout_service, world, 5)
        traveler_id = world.traveler.id
        hotel_id, room_type_id, owner_id = world.hotel.id, world.room_type.id, world.owner.id
        late_request = checkout_request(stays=[stay_request(world, JUNE_1, JUNE_2, rooms=3)])

        cancel_selected = availability_service._cancel_selected
        late_outcome = []

        async def cancel_then_checkout(selected):
            outcomes = await cancel_selected(selected)
            try:
                await checkout_service.checkout(traveler_id, late_request)
            except InsufficientAvailability as exc:
                late_outcome.append(exc)
            return outcomes

        availability_service._cancel_selected = cancel_then_checkout

        results = await availability_service.apply_updates(
            hotel_id,
            room_type_id,
            owner_id,
            [AvailabilityUpdate(date=JUNE_1, available_rooms=2)],
            force=True,
        )

        assert len(late_outcome) == 1
        assert results[0]["booked_rooms"] == 2
        ledger = InventoryLedger(test_session)
        assert await ledger.get_availability(room_type_id, JUNE_1) == 2
        assert await ledger.get_booked_count(room_type_id, JUNE_1) == 2

    @pytest.mark.asyncio
    async def test_mixed_batch_applies_non_conflicting_dates(
        self, availability_service, checkout_service, test_session, world
    ):
        await _book_single_rooms(checkout_service, world, 3)

        with pytest.raises(AvailabilityConflict) as exc_info:
            await availability_service.apply_updates(
                world.hotel.id,
                world.room_type.id,
                world.owner.id,
                [
                    AvailabilityUpdate(date=JUNE_1, available_rooms=1),
                    AvailabilityUpdate(date=JUNE_2, available_rooms=4),
                ],
            )

        error = exc_info.value
        assert [c["date"] for c in error.conflicts] == ["2024-06-01"]
        statuses = [r["status"] for r in error.problem_details["results"]]
        assert statuses == ["conflict", "updated"]

        ledger = InventoryLedger(test_session)
        assert await ledger.get_availability(world.room_type.id, JUNE_1) == 5
        assert await ledger.get_availability(world.room_type.id, JUNE_2) == 4

    @pytest.mark.asyncio
    async def test_reduction_to_booked_count_is_not_a_conflict(
        self, availability_service, checkout_service, world
    ):
        await _book_single_rooms(checkout_service, world, 2)

        results = await availability_service.apply_updates(
            world.hotel.id,
            world.room_type.id,
            world.owner.id,
            [AvailabilityUpdate(date=JUNE_1, available_rooms=2)],
        )

        assert results[0]["status"] == "updated"
        assert results[0]["cancelled_bookings"] == []

    @pytest.mark.asyncio
    async def test_other_owner_is_forbidden(self, availability_service, world):
        with pytest.raises(AuthorizationError):
            await availability_service.apply_updates(
                world.hotel.id,
                world.room_type.id,
                world.other_owner.id,
                [AvailabilityUpdate(date=JUNE_1, available_rooms=1)],
            )

    @pytest.mark.asyncio
    async def test_room_type_of_another_hotel(self, availability_service, world):
        with pytest.raises(NotFoundError):
            await availability_service.apply_updates(
                world.hotel.id,
                world.other_room_type.id,
                world.owner.id,
                [AvailabilityUpdate(date=JUNE_1, available_rooms=1)],
            )


@pytest.mark.asyncio
async def test_calendar_for_owner(availability_service, checkout_service, world):
    await _book_single_rooms(checkout_service, world, 2)

    room_type, days = await availability_service.calendar(
        world.hotel.id, world.room_type.id, world.owner.id, JUNE_1, JUNE_2
    )

    assert room_type.id == world.room_type.id
    assert [(d.booked_rooms, d.remaining_rooms) for d in days] == [(2, 3), (0, 5)]
