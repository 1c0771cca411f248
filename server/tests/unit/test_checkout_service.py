"""Tests for the checkout workflow."""

from datetime import date, timedelta

import pytest
from sqlalchemy import func, select

from booking_api.core.dates import utcnow
from booking_api.core.exceptions import GatewayError, InsufficientAvailability, NotFoundError, ValidationError
from booking_api.models import Booking, BookingStatus, HotelStay
from booking_api.models.notification import NotificationType
from booking_api.services.inventory_service import InventoryLedger

from conftest import checkout_request, stay_request

CHECK_IN = date(2024, 6, 1)
CHECK_OUT = date(2024, 6, 3)


async def _count(session, column) -> int:
    result = await session.execute(select(func.count(column)))
    return result.scalar_one()


class TestHotelOnlyCheckout:
    """Carts without flights are confirmed in a single transaction."""

    @pytest.mark.asyncio
    async def test_confirms_booking_and_reserves_rooms(self, checkout_service, test_session, world):
        request = checkout_request(stays=[stay_request(world, CHECK_IN, CHECK_OUT, rooms=2)])

        result = await checkout_service.checkout(world.traveler.id, request)

        booking = result.booking
        assert booking.status == BookingStatus.CONFIRMED.value
        assert booking.user_id == world.traveler.id
        # 2 nights x 2 rooms x 100.00
        assert booking.total_price_amount == 40000
        assert booking.payment_card_type == "visa"
        assert booking.payment_card_last4 == "1111"
        assert len(booking.hotel_stays) == 1
        assert booking.hotel_stays[0].total_price_amount == 40000

        ledger = InventoryLedger(test_session)
        assert await ledger.get_free_rooms(world.room_type.id, CHECK_IN) == 3
        assert await ledger.get_free_rooms(world.room_type.id, date(2024, 6, 2)) == 3
        assert await ledger.get_free_rooms(world.room_type.id, CHECK_OUT) == 5

    @pytest.mark.asyncio
    async def test_notifies_traveler_and_owner_after_commit(self, checkout_service, sink, world):
        request = checkout_request(stays=[stay_request(world, CHECK_IN, CHECK_OUT)])

        result = await checkout_service.checkout(world.traveler.id, request)

        created = sink.for_user(world.traveler.id, NotificationType.BOOKING_CREATED)
        reservations = sink.for_user(world.owner.id, NotificationType.NEW_RESERVATION)
        assert len(created) == 1
        assert len(reservations) == 1
        assert created[0].related_booking_id == result.booking.id
        assert "Harbour View" in reservations[0].message
        assert "2024-06-01" in reservations[0].message

    @pytest.mark.asyncio
    async def test_generates_invoice(self, checkout_service, world):
        request = checkout_request(stays=[stay_request(world, CHECK_IN, CHECK_OUT)])

        result = await checkout_service.checkout(world.traveler.id, request)

        assert result.invoice is not None
        assert result.invoice.pdf_url == f"/invoices/booking-{result.booking.id}.pdf"
        assert result.invoice.invoice_number.startswith("INV-")
        assert result.gateway_booking is None

    @pytest.mark.asyncio
    async def test_insufficient_availability_persists_nothing(
        self, checkout_service, test_session, sink, world
    ):
        traveler_id = world.traveler.id
        room_type_id = world.room_type.id
        request = checkout_request(stays=[stay_request(world, CHECK_IN, CHECK_OUT, rooms=6)])

        with pytest.raises(InsufficientAvailability) as exc_info:
            await checkout_service.checkout(traveler_id, request)

        assert exc_info.value.day == CHECK_IN
        assert await _count(test_session, Booking.id) == 0
        assert await _count(test_session, HotelStay.id) == 0
        assert await InventoryLedger(test_session).get_free_rooms(room_type_id, CHECK_IN) == 5
        assert sink.effects == []

    @pytest.mark.asyncio
    async def test_second_stay_failing_releases_first(self, checkout_service, test_session, world):
        traveler_id = world.traveler.id
        room_type_id = world.room_type.id
        other_room_type_id = world.other_room_type.id
        request = checkout_request(stays=[
            stay_request(world, CHECK_IN, CHECK_OUT, rooms=1),
            stay_request(world, CHECK_IN, CHECK_OUT, rooms=3, room_type=world.other_room_type),
        ])

        with pytest.raises(InsufficientAvailability):
            await checkout_service.checkout(traveler_id, request)

        ledger = InventoryLedger(test_session)
        assert await ledger.get_free_rooms(room_type_id, CHECK_IN) == 5
        assert await ledger.get_free_rooms(other_room_type_id, CHECK_IN) == 2


class TestCheckoutValidation:

    @pytest.mark.asyncio
    async def test_empty_cart(self, checkout_service, world):
        with pytest.raises(ValidationError) as exc_info:
            await checkout_service.checkout(world.traveler.id, checkout_request())
        assert "At least one" in exc_info.value.problem_details["detail"]

    @pytest.mark.asyncio
    async def test_invalid_card(self, checkout_service, world):
        request = checkout_request(stays=[stay_request(world, CHECK_IN, CHECK_OUT)])
        request.payment.card_number = "1234 5678 9012 3456"

        with pytest.raises(ValidationError) as exc_info:
            await checkout_service.checkout(world.traveler.id, request)

        assert exc_info.value.problem_details["errors"]["card_number"] == "Invalid card number"

    @pytest.mark.asyncio
    async def test_room_type_from_another_hotel(self, checkout_service, world):
        stay = stay_request(world, CHECK_IN, CHECK_OUT, room_type=world.other_room_type)
        stay["hotel_id"] = str(world.hotel.id)

        with pytest.raises(ValidationError) as exc_info:
            await checkout_service.checkout(world.traveler.id, checkout_request(stays=[stay]))

        assert "Room type not found" in exc_info.value.problem_details["detail"]

    @pytest.mark.asyncio
    async def test_malformed_room_type_id(self, checkout_service, world):
        stay = stay_request(world, CHECK_IN, CHECK_OUT)
        stay["room_type_id"] = "not-a-uuid"

        with pytest.raises(ValidationError):
            await checkout_service.checkout(world.traveler.id, checkout_request(stays=[stay]))

    @pytest.mark.asyncio
    async def test_check_out_must_follow_check_in(self, checkout_service, world):
        stay = stay_request(world, CHECK_OUT, CHECK_IN)

        with pytest.raises(ValidationError) as exc_info:
            await checkout_service.checkout(world.traveler.id, checkout_request(stays=[stay]))

        assert "check_out_date" in exc_info.value.problem_details["errors"]

    @pytest.mark.asyncio
    async def test_flight_without_usable_ids(self, checkout_service, world):
        request = checkout_request(flights=[{"segment_ids": ["  %  "]}])

        with pytest.raises(ValidationError):
            await checkout_service.checkout(world.traveler.id, request)

    @pytest.mark.asyncio
    async def test_unknown_user(self, checkout_service, world):
        request = checkout_request(stays=[stay_request(world, CHECK_IN, CHECK_OUT)])

        with pytest.raises(NotFoundError):
            await checkout_service.checkout(world.hotel.id, request)


class TestCheckoutWithFlights:

    @pytest.mark.asyncio
    async def test_books_flights_and_confirms(self, checkout_service, gateway, sink, world):
        request = checkout_request(
            stays=[stay_request(world, CHECK_IN, CHECK_OUT)],
            flights=[{"segment_ids": ["FL1%FL2"], "origin": "JFK", "destination": "LHR"}],
        )

        result = await checkout_service.checkout(world.traveler.id, request)

        traveler, segments = gateway.book_calls[0]
        assert segments == ["FL1", "FL2"]
        assert traveler.last_name == "Rivera"
        assert traveler.passport_number == "X1234567"

        booking = result.booking
        assert booking.status == BookingStatus.CONFIRMED.value
        item = booking.flight_items[0]
        assert item.segment_ids == ["FL1", "FL2"]
        assert item.external_booking_reference == "AFS0001"
        assert item.external_ticket_number == "TKT000001"
        assert item.price_amount == 50000
        assert item.airline == "Test Air"
        # 2 nights x 100.00 hotel + 2 x 250.00 flights
        assert booking.total_price_amount == 20000 + 50000

        assert result.gateway_booking.booking_reference == "AFS0001"
        assert len(sink.for_user(world.traveler.id, NotificationType.BOOKING_CREATED)) == 1

    @pytest.mark.asyncio
    async def test_segments_of_all_flights_book_together(self, checkout_service, gateway, world):
        request = checkout_request(flights=[
            {"segment_ids": ["FL1"]},
            {"segment_ids": ["FL2splitting_hereFL1"]},
        ])

        result = await checkout_service.checkout(world.traveler.id, request)

        assert len(gateway.book_calls) == 1
        assert gateway.book_calls[0][1] == ["FL1", "FL2"]
        assert {item.external_booking_reference for item in result.booking.flight_items} == {"AFS0001"}

    @pytest.mark.asyncio
    async def test_gateway_failure_compensates(self, checkout_service, gateway, sink, test_session, world):
        gateway.book_error = "Flight is fully booked"
        request = checkout_request(
            stays=[stay_request(world, CHECK_IN, CHECK_OUT, rooms=2)],
            flights=[{"segment_ids": ["FL1"]}],
        )

        with pytest.raises(GatewayError) as exc_info:
            await checkout_service.checkout(world.traveler.id, request)

        assert exc_info.value.problem_details["detail"] == "Flight is fully booked"

        result = await test_session.execute(select(Booking))
        booking = result.scalar_one()
        assert booking.status == BookingStatus.CANCELLED.value
        assert all(stay.status == "cancelled" for stay in booking.hotel_stays)
        assert await InventoryLedger(test_session).get_free_rooms(world.room_type.id, CHECK_IN) == 5
        assert sink.effects == []

    @pytest.mark.asyncio
    async def test_interrupted_checkout_expires(self, checkout_service, gateway, test_session, world):
        async def crash(traveler, segment_ids):
            raise RuntimeError("worker lost")

        gateway.book = crash
        room_type_id = world.room_type.id
        request = checkout_request(
            stays=[stay_request(world, CHECK_IN, CHECK_OUT)],
            flights=[{"segment_ids": ["FL1"]}],
        )

        with pytest.raises(RuntimeError):
            await checkout_service.checkout(world.traveler.id, request)

        result = await test_session.execute(select(Booking))
        booking = result.scalar_one()
        assert booking.status == BookingStatus.PENDING.value
        ledger = InventoryLedger(test_session)
        assert await ledger.get_free_rooms(room_type_id, CHECK_IN) == 4

        # Not stale yet
        assert await checkout_service.expire_stale_checkouts() == 0

        expired = await checkout_service.expire_stale_checkouts(now=utcnow() + timedelta(hours=1))

        assert expired == 1
        booking = await checkout_service.bookings.get_booking(booking.id)
        assert booking.status == BookingStatus.CANCELLED.value
        assert await ledger.get_free_rooms(room_type_id, CHECK_IN) == 5

    @pytest.mark.asyncio
    async def test_compensate_ignores_confirmed_booking(self, checkout_service, world):
        request = checkout_request(stays=[stay_request(world, CHECK_IN, CHECK_OUT)])
        result = await checkout_service.checkout(world.traveler.id, request)

        assert await checkout_service.compensate(result.booking.id) is False

        booking = await checkout_service.bookings.get_booking(result.booking.id)
        assert booking.status == BookingStatus.CONFIRMED.value
