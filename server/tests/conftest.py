"""Test configuration and fixtures."""

from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Optional
from uuid import UUID

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from booking_api.core.config import settings
from booking_api.core.database import Base
from booking_api.core.dependencies import get_db
from booking_api.core.exceptions import GatewayError
from booking_api.core.locks import InventoryLockRegistry
from booking_api.models import *  # noqa: F403 - Import all models
from booking_api.models import Hotel, RoomType, User
from booking_api.models.notification import NotificationType
from booking_api.schemas.booking import CreateBookingRequest
from booking_api.services.availability_service import AvailabilityService
from booking_api.services.cancellation_service import CancellationService
from booking_api.services.checkout_service import CheckoutService
from booking_api.services.flight_gateway import FlightGateway, GatewayBooking, GatewayFlight, Traveler
from booking_api.services.invoice_service import InvoiceService, UrlInvoiceGenerator
from booking_api.services.notification_service import EffectPublisher, NotificationEffect, NotificationSink

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_PAYMENT = {
    "card_number": "4111 1111 1111 1111",
    "card_expiry": "12/99",
    "card_cvc": "123",
}


class FakeFlightGateway(FlightGateway):
    """In-memory flight system recording every call."""

    def __init__(self) -> None:
        self.book_calls: list[tuple[Traveler, list[str]]] = []
        self.cancel_calls: list[tuple[str, str]] = []
        self.bookings: dict[str, GatewayBooking] = {}
        self.book_error: Optional[str] = None
        self.cancel_error: Optional[str] = None
        self.verify_error: Optional[str] = None
        self.flight_status = "SCHEDULED"
        self.price = 250.0

    async def book(self, traveler: Traveler, segment_ids: list[str]) -> GatewayBooking:
        self.book_calls.append((traveler, list(segment_ids)))
        if self.book_error:
            raise GatewayError("book", self.book_error, status=400)

        number = len(self.bookings) + 1
        booking = GatewayBooking(
            booking_reference=f"AFS{number:04d}",
            ticket_number=f"TKT{number:06d}",
            flights=[
                GatewayFlight(
                    id=segment_id,
                    flight_number=f"TA{100 + index}",
                    airline="Test Air",
                    origin="JFK",
                    destination="LHR",
                    departure_time="2024-06-01T08:00:00Z",
                    arrival_time="2024-06-01T20:00:00Z",
                    price=self.price,
                    status=self.flight_status,
                    raw={"id": segment_id, "status": self.flight_status},
                )
                for index, segment_id in enumerate(segment_ids)
            ],
            status="CONFIRMED",
        )
        self.bookings[booking.booking_reference] = booking
        return booking

    async def cancel(self, last_name: str, booking_reference: str) -> dict[str, Any]:
        self.cancel_calls.append((last_name, booking_reference))
        if self.cancel_error:
            raise GatewayError("cancel", self.cancel_error, status=404)
        return {"bookingReference": booking_reference, "status": "CANCELLED"}

    async def verify(self, booking_reference: str, last_name: str) -> GatewayBooking:
        if self.verify_error:
            raise GatewayError("verify", self.verify_error, status=503)
        booking = self.bookings.get(booking_reference)
        if booking is None:
            raise GatewayError("verify", "Booking not found", status=404)
        for flight in booking.flights:
            flight.status = self.flight_status
        return booking


class RecordingSink(NotificationSink):
    """Keeps emitted effects in memory."""

    def __init__(self) -> None:
        self.effects: list[NotificationEffect] = []

    async def emit(self, effects: Iterable[NotificationEffect]) -> None:
        self.effects.extend(effects)

    def for_user(self, user_id: UUID, type: Optional[NotificationType] = None) -> list[NotificationEffect]:
        return [
            e for e in self.effects
            if e.user_id == user_id and (type is None or e.type == type)
        ]


@dataclass
class World:
    """Seeded users, hotel and room type."""
    traveler: User
    other_traveler: User
    owner: User
    other_owner: User
    hotel: Hotel
    room_type: RoomType
    other_hotel: Hotel
    other_room_type: RoomType


def stay_request(
    world: World,
    check_in: date,
    check_out: date,
    rooms: int = 1,
    room_type: Optional[RoomType] = None,
) -> dict[str, Any]:
    room_type = room_type or world.room_type
    return {
        "hotel_id": str(room_type.hotel_id),
        "room_type_id": str(room_type.id),
        "check_in_date": check_in.isoformat(),
        "check_out_date": check_out.isoformat(),
        "number_of_rooms": rooms,
    }


def checkout_request(
    stays: Optional[list[dict[str, Any]]] = None,
    flights: Optional[list[dict[str, Any]]] = None,
) -> CreateBookingRequest:
    return CreateBookingRequest.model_validate({
        "payment": TEST_PAYMENT,
        "hotel_stays": stays or [],
        "flights": flights or [],
    })


def issue_token(user_id: UUID, secret: Optional[str] = None, **claims: Any) -> str:
    payload = {"sub": str(user_id), **claims}
    return jwt.encode(payload, secret or settings.bearer_token_secret, algorithm="HS256")


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(user.id)}"}


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway() -> FakeFlightGateway:
    return FakeFlightGateway()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def locks() -> InventoryLockRegistry:
    return InventoryLockRegistry()


@pytest_asyncio.fixture(scope="function")
async def world(test_session) -> World:
    """Two travelers, two hotel owners, one hotel each with one room type."""
    traveler = User(email="traveler@example.com", first_name="Alex", last_name="Rivera", passport_number="X1234567")
    other_traveler = User(email="other@example.com", first_name="Jo", last_name="Smith")
    owner = User(email="owner@example.com", first_name="Sam", last_name="Keller")
    other_owner = User(email="owner2@example.com", first_name="Kim", last_name="Lee")
    test_session.add_all([traveler, other_traveler, owner, other_owner])
    await test_session.flush()

    hotel = Hotel(owner_id=owner.id, name="Harbour View", address="1 Quay Street")
    other_hotel = Hotel(owner_id=other_owner.id, name="Mountain Lodge", address="2 Peak Road")
    test_session.add_all([hotel, other_hotel])
    await test_session.flush()

    room_type = RoomType(
        hotel_id=hotel.id,
        name="Standard Double",
        price_per_night_amount=10000,
        currency="USD",
        base_availability=5,
    )
    other_room_type = RoomType(
        hotel_id=other_hotel.id,
        name="Chalet",
        price_per_night_amount=20000,
        currency="USD",
        base_availability=2,
    )
    test_session.add_all([room_type, other_room_type])
    await test_session.commit()

    return World(
        traveler=traveler,
        other_traveler=other_traveler,
        owner=owner,
        other_owner=other_owner,
        hotel=hotel,
        room_type=room_type,
        other_hotel=other_hotel,
        other_room_type=other_room_type,
    )


@pytest.fixture
def checkout_service(test_session, gateway, locks, sink) -> CheckoutService:
    return CheckoutService(
        test_session,
        gateway,
        locks,
        EffectPublisher(sink),
        InvoiceService(test_session, UrlInvoiceGenerator("/invoices")),
    )


@pytest.fixture
def cancellation_service(test_session, gateway, locks, sink) -> CancellationService:
    return CancellationService(test_session, gateway, locks, EffectPublisher(sink))


@pytest.fixture
def availability_service(test_session, locks, cancellation_service) -> AvailabilityService:
    return AvailabilityService(test_session, locks, cancellation_service)


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, gateway, sink, locks):
    """Create a test FastAPI application."""
    from fastapi import FastAPI
    from fastapi.exceptions import RequestValidationError

    from booking_api.core.exceptions import (
        ProblemDetailsException,
        generic_exception_handler,
        problem_details_handler,
        request_validation_handler,
    )
    from booking_api.routers import booking, flight, health, hotel, metrics

    # Create a simplified test app without lifespan
    app = FastAPI(
        title="Travel Booking API (Test)",
        description="Test version of the API",
        version="1.0.0-test",
    )

    # Register exception handlers
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": "travel-booking-api", "environment": "test"}

    # Register API routers
    app.include_router(health.router)
    app.include_router(booking.router)
    app.include_router(flight.router)
    app.include_router(hotel.router)
    app.include_router(metrics.router)

    # Collaborators normally created by the lifespan
    app.state.flight_gateway = gateway
    app.state.notification_sink = sink
    app.state.inventory_locks = locks
    app.state.invoice_generator = UrlInvoiceGenerator("/invoices")

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
