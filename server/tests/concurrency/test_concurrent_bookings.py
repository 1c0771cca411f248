"""Concurrency tests for booking operations.

Each simulated request gets its own session on a file-backed database so
that requests really interleave; they share one inventory lock registry as
requests inside one worker process do.
"""

import asyncio
from datetime import date

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from booking_api.core.database import Base
from booking_api.core.exceptions import InsufficientAvailability
from booking_api.core.locks import InventoryLockRegistry
from booking_api.models import Booking, BookingStatus, Hotel, HotelStay, RoomAvailability, RoomType, User
from booking_api.services.cancellation_service import CancellationService
from booking_api.services.checkout_service import CheckoutService
from booking_api.services.invoice_service import InvoiceService, UrlInvoiceGenerator
from booking_api.services.notification_service import EffectPublisher

from conftest import FakeFlightGateway, RecordingSink, checkout_request

CHECK_IN = date(2024, 6, 1)
CHECK_OUT = date(2024, 6, 2)
CAPACITY = 5

pytestmark = pytest.mark.slow


@pytest_asyncio.fixture
async def file_factory(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def seeded(file_factory):
    async with file_factory() as session:
        traveler = User(email="traveler@example.com", first_name="Alex", last_name="Rivera")
        owner = User(email="owner@example.com", first_name="Sam", last_name="Keller")
        session.add_all([traveler, owner])
        await session.flush()

        hotel = Hotel(owner_id=owner.id, name="Harbour View", address="1 Quay Street")
        session.add(hotel)
        await session.flush()

        room_type = RoomType(
            hotel_id=hotel.id,
            name="Standard Double",
            price_per_night_amount=10000,
            currency="USD",
            base_availability=CAPACITY,
        )
        session.add(room_type)
        await session.commit()

        return {"traveler_id": traveler.id, "hotel_id": hotel.id, "room_type_id": room_type.id}


def _stay(seeded) -> dict:
    return {
        "hotel_id": str(seeded["hotel_id"]),
        "room_type_id": str(seeded["room_type_id"]),
        "check_in_date": CHECK_IN.isoformat(),
        "check_out_date": CHECK_OUT.isoformat(),
        "number_of_rooms": 1,
    }


async def _checkout(file_factory, locks, seeded):
    """One checkout request on its own session."""
    async with file_factory() as session:
        service = CheckoutService(
            session,
            FakeFlightGateway(),
            locks,
            EffectPublisher(RecordingSink()),
            InvoiceService(session, UrlInvoiceGenerator("/invoices")),
        )
        result = await service.checkout(seeded["traveler_id"], checkout_request(stays=[_stay(seeded)]))
        return result.booking.id


async def _cancel(file_factory, locks, booking_id, user_id):
    async with file_factory() as session:
        service = CancellationService(session, FakeFlightGateway(), locks, EffectPublisher(RecordingSink()))
        await service.cancel_booking(booking_id, user_id)


async def _inventory_state(file_factory, seeded) -> tuple[int, int]:
    """(booked_rooms on the ledger, rooms held by active stays)."""
    async with file_factory() as session:
        record = await session.execute(
            select(RoomAvailability.booked_rooms).where(
                RoomAvailability.room_type_id == seeded["room_type_id"],
                RoomAvailability.day == CHECK_IN,
            )
        )
        active = await session.execute(
            select(func.coalesce(func.sum(HotelStay.number_of_rooms), 0)).where(
                HotelStay.room_type_id == seeded["room_type_id"],
                HotelStay.status == "confirmed",
            )
        )
        return record.scalar_one(), active.scalar_one()


@pytest.mark.asyncio
async def test_concurrent_checkouts_no_overbooking(file_factory, seeded):
    """Twice as many concurrent checkouts as rooms: exactly capacity succeed."""
    locks = InventoryLockRegistry()

    results = await asyncio.gather(
        *(_checkout(file_factory, locks, seeded) for _ in range(CAPACITY * 2)),
        return_exceptions=True,
    )

    succeeded = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, InsufficientAvailability)]
    assert len(succeeded) == CAPACITY
    assert len(rejected) == CAPACITY

    booked, active = await _inventory_state(file_factory, seeded)
    assert booked == CAPACITY
    assert active == CAPACITY


@pytest.mark.asyncio
async def test_concurrent_cancel_and_checkout(file_factory, seeded):
    """Cancellations racing new checkouts keep the ledger equal to active stays."""
    locks = InventoryLockRegistry()
    booking_ids = [await _checkout(file_factory, locks, seeded) for _ in range(CAPACITY)]

    results = await asyncio.gather(
        *(_cancel(file_factory, locks, booking_id, seeded["traveler_id"]) for booking_id in booking_ids[:2]),
        *(_checkout(file_factory, locks, seeded) for _ in range(4)),
        return_exceptions=True,
    )

    unexpected = [r for r in results if isinstance(r, Exception) and not isinstance(r, InsufficientAvailability)]
    assert unexpected == []

    booked, active = await _inventory_state(file_factory, seeded)
    assert booked == active
    assert active <= CAPACITY

    async with file_factory() as session:
        cancelled = await session.execute(
            select(func.count(Booking.id)).where(Booking.status == BookingStatus.CANCELLED.value)
        )
        assert cancelled.scalar_one() == 2
