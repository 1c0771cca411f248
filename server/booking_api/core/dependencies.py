"""FastAPI dependencies for database, authentication, and shared services."""

from typing import AsyncGenerator, Optional
from uuid import UUID

import jwt
from fastapi import Depends, Header, Request
from jwt import PyJWTError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .database import async_session_factory, get_async_session
from .exceptions import AuthenticationError, ValidationError
from .locks import InventoryLockRegistry
from ..services.availability_service import AvailabilityService
from ..services.cancellation_service import CancellationService
from ..services.checkout_service import CheckoutService
from ..services.flight_gateway import FlightGateway, HttpFlightGateway
from ..services.invoice_service import InvoiceGenerator, InvoiceService, UrlInvoiceGenerator
from ..services.notification_service import DatabaseNotificationSink, EffectPublisher, NotificationSink
from ..services.payment_service import CardValidator


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency that provides async database sessions.

    Yields:
        AsyncSession: Database session
    """
    async for session in get_async_session():
        yield session


async def resolve_caller(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> UUID:
    """
    Authentication dependency that validates Bearer tokens.

    The token is an HS256 JWT whose ``sub`` claim is the caller's user id.

    Raises:
        AuthenticationError: If the token is missing, invalid or expired
    """
    if not authorization:
        raise AuthenticationError(detail="Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError(detail="Invalid authorization header format")
    if scheme.lower() != "bearer":
        raise AuthenticationError(detail="Invalid authentication scheme")

    try:
        # PyJWT rejects expired tokens when an exp claim is present
        payload = jwt.decode(
            token,
            settings.bearer_token_secret,
            algorithms=["HS256"]
        )
    except PyJWTError as e:
        raise AuthenticationError(detail=f"Token validation failed: {str(e)}")

    subject = payload.get("sub")
    if subject is None:
        raise AuthenticationError(detail="Invalid token payload")
    try:
        return UUID(str(subject))
    except ValueError:
        raise AuthenticationError(detail="Invalid token subject")


async def get_idempotency_key(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key")
) -> Optional[str]:
    """
    Extract and validate the idempotency key from request headers.

    Returns:
        str: The key, or None if not provided
    """
    if not idempotency_key:
        return None

    if len(idempotency_key) > 255:
        raise ValidationError(
            detail="Idempotency key must be between 1 and 255 characters",
            errors={"Idempotency-Key": "too long"},
        )
    return idempotency_key


def get_flight_gateway(request: Request) -> FlightGateway:
    gateway = getattr(request.app.state, "flight_gateway", None)
    if gateway is None:
        gateway = HttpFlightGateway.from_settings()
        request.app.state.flight_gateway = gateway
    return gateway


def get_lock_registry(request: Request) -> InventoryLockRegistry:
    locks = getattr(request.app.state, "inventory_locks", None)
    if locks is None:
        locks = InventoryLockRegistry()
        request.app.state.inventory_locks = locks
    return locks


def get_notification_sink(request: Request) -> NotificationSink:
    sink = getattr(request.app.state, "notification_sink", None)
    if sink is None:
        sink = DatabaseNotificationSink(async_session_factory)
        request.app.state.notification_sink = sink
    return sink


def get_invoice_generator(request: Request) -> InvoiceGenerator:
    generator = getattr(request.app.state, "invoice_generator", None)
    if generator is None:
        generator = UrlInvoiceGenerator()
        request.app.state.invoice_generator = generator
    return generator


def get_card_validator(request: Request) -> CardValidator:
    return getattr(request.app.state, "card_validator", None) or CardValidator()


def get_publisher(sink: NotificationSink = Depends(get_notification_sink)) -> EffectPublisher:
    """A fresh effect buffer per request over the shared sink."""
    return EffectPublisher(sink)


def get_checkout_service(
    db: AsyncSession = Depends(get_db),
    gateway: FlightGateway = Depends(get_flight_gateway),
    locks: InventoryLockRegistry = Depends(get_lock_registry),
    publisher: EffectPublisher = Depends(get_publisher),
    generator: InvoiceGenerator = Depends(get_invoice_generator),
    card_validator: CardValidator = Depends(get_card_validator),
) -> CheckoutService:
    return CheckoutService(
        db,
        gateway,
        locks,
        publisher,
        InvoiceService(db, generator),
        card_validator=card_validator,
    )


def get_cancellation_service(
    db: AsyncSession = Depends(get_db),
    gateway: FlightGateway = Depends(get_flight_gateway),
    locks: InventoryLockRegistry = Depends(get_lock_registry),
    publisher: EffectPublisher = Depends(get_publisher),
) -> CancellationService:
    return CancellationService(db, gateway, locks, publisher)


def get_availability_service(
    db: AsyncSession = Depends(get_db),
    locks: InventoryLockRegistry = Depends(get_lock_registry),
    cancellations: CancellationService = Depends(get_cancellation_service),
) -> AvailabilityService:
    return AvailabilityService(db, locks, cancellations)


RequiredAuth = Depends(resolve_caller)
DatabaseSession = Depends(get_db)
IdempotencyKey = Depends(get_idempotency_key)
