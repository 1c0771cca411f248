"""Client for the external flight system (AFS): book, cancel and retrieve."""

import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import httpx
from opentelemetry import trace

from ..core.config import settings
from ..core.exceptions import GatewayError
from ..core.observability import metrics_collector

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Separators the storefront uses when packing several segment ids into one
SEGMENT_SEPARATOR = "splitting_here"
LEGACY_SEPARATOR = "%"

_UUID = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
UUID_PATTERN = re.compile(_UUID)
UUID_RUN_PATTERN = re.compile(rf"^{_UUID}(?:-{_UUID})+$")


def _split_dashed(token: str) -> list[str]:
    if UUID_RUN_PATTERN.match(token):
        return UUID_PATTERN.findall(token)
    if "-" in token and len(token) > 36:
        return token.split("-")
    return [token]


def normalize_flight_ids(ids: Iterable[str]) -> list[str]:
    """
    Flatten compound flight identifiers into individual segment ids.

    Each id is split on ``splitting_here``, then on ``%``. A remaining token
    made of several dash-joined UUIDs is split into those UUIDs; any other
    token longer than a UUID that contains a dash is split on every dash.
    Blank tokens are dropped and duplicates removed, keeping first order.
    """
    segments: list[str] = []
    for raw in ids:
        for part in str(raw).split(SEGMENT_SEPARATOR):
            for token in part.split(LEGACY_SEPARATOR):
                for segment in _split_dashed(token.strip()):
                    segment = segment.strip()
                    if segment and segment not in segments:
                        segments.append(segment)
    return segments


@dataclass(frozen=True)
class Traveler:
    email: str
    first_name: str
    last_name: str
    passport_number: str


@dataclass
class GatewayFlight:
    """One flight segment as reported by the flight system."""
    id: str
    flight_number: Optional[str] = None
    airline: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    price: Optional[float] = None
    status: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "GatewayFlight":
        def code(value: Any) -> Optional[str]:
            if isinstance(value, dict):
                return value.get("code")
            return value

        airline = payload.get("airline")
        if isinstance(airline, dict):
            airline = airline.get("name") or airline.get("code")

        price = payload.get("price")
        return cls(
            id=str(payload.get("id")),
            flight_number=payload.get("flightNumber"),
            airline=airline,
            origin=code(payload.get("origin")),
            destination=code(payload.get("destination")),
            departure_time=payload.get("departureTime"),
            arrival_time=payload.get("arrivalTime"),
            price=float(price) if price is not None else None,
            status=payload.get("status"),
            raw=payload,
        )


@dataclass
class GatewayBooking:
    """Result of a booking or retrieve call."""
    booking_reference: str
    ticket_number: Optional[str]
    flights: list[GatewayFlight]
    status: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "GatewayBooking":
        reference = payload.get("bookingReference")
        if not reference:
            raise GatewayError("book", "Flight system response has no booking reference")
        return cls(
            booking_reference=reference,
            ticket_number=payload.get("ticketNumber"),
            flights=[GatewayFlight.from_payload(f) for f in payload.get("flights") or []],
            status=payload.get("status"),
        )

    def find_flight(self, segment_id: str) -> Optional[GatewayFlight]:
        for flight in self.flights:
            if flight.id == segment_id:
                return flight
        return None


class FlightGateway(ABC):
    """Operations the booking core needs from the flight system."""

    @abstractmethod
    async def book(self, traveler: Traveler, segment_ids: list[str]) -> GatewayBooking:
        """Book every segment in one remote booking."""

    @abstractmethod
    async def cancel(self, last_name: str, booking_reference: str) -> dict[str, Any]:
        """Cancel a remote booking by reference."""

    @abstractmethod
    async def verify(self, booking_reference: str, last_name: str) -> GatewayBooking:
        """Retrieve the current state of a remote booking."""


class HttpFlightGateway(FlightGateway):
    """
    ``FlightGateway`` over HTTP.

    Every request carries the ``x-api-key`` header and is bounded by the
    configured timeout. Non-2xx responses, transport errors and timeouts
    all surface as ``GatewayError`` with the remote message when there is
    one.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"x-api-key": api_key, "Content-Type": "application/json"},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @classmethod
    def from_settings(cls) -> "HttpFlightGateway":
        return cls(
            base_url=settings.flight_gateway_base_url,
            api_key=settings.flight_gateway_api_key,
            timeout=settings.flight_gateway_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _remote_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(body, dict):
            return str(body.get("error") or body.get("message") or body)
        return str(body)

    async def _request(self, operation: str, method: str, path: str, **kwargs) -> dict[str, Any]:
        start = time.perf_counter()
        with tracer.start_as_current_span(f"flight_gateway.{operation}") as span:
            span.set_attribute("http.method", method)
            span.set_attribute("http.route", path)
            try:
                response = await self._client.request(method, path, **kwargs)
            except httpx.TimeoutException as exc:
                metrics_collector.record_gateway_request(operation, "timeout", time.perf_counter() - start)
                logger.warning("Flight gateway timeout", extra={"operation": operation, "path": path})
                raise GatewayError(operation, f"Flight system timed out during {operation}") from exc
            except httpx.HTTPError as exc:
                metrics_collector.record_gateway_request(operation, "error", time.perf_counter() - start)
                logger.warning(
                    "Flight gateway transport error",
                    extra={"operation": operation, "path": path, "error": str(exc)}
                )
                raise GatewayError(operation, f"Flight system unreachable: {exc}") from exc

            span.set_attribute("http.status_code", response.status_code)
            duration = time.perf_counter() - start

            if response.is_error:
                message = self._remote_message(response)
                metrics_collector.record_gateway_request(operation, "rejected", duration)
                logger.warning(
                    "Flight gateway rejected request",
                    extra={
                        "operation": operation,
                        "status_code": response.status_code,
                        "remote_message": message,
                    }
                )
                raise GatewayError(operation, message, status=response.status_code)

            metrics_collector.record_gateway_request(operation, "success", duration)
            try:
                return response.json()
            except ValueError as exc:
                raise GatewayError(operation, "Flight system returned an invalid response") from exc

    async def book(self, traveler: Traveler, segment_ids: list[str]) -> GatewayBooking:
        if not segment_ids:
            raise GatewayError("book", "No valid flight IDs found")

        payload = await self._request(
            "book",
            "POST",
            "/bookings",
            json={
                "email": traveler.email,
                "firstName": traveler.first_name,
                "lastName": traveler.last_name,
                "passportNumber": traveler.passport_number,
                "flightIds": segment_ids,
            },
        )
        booking = GatewayBooking.from_payload(payload)
        logger.info(
            "Flights booked",
            extra={"booking_reference": booking.booking_reference, "segments": len(segment_ids)}
        )
        return booking

    async def cancel(self, last_name: str, booking_reference: str) -> dict[str, Any]:
        result = await self._request(
            "cancel",
            "POST",
            "/bookings/cancel",
            json={"lastName": last_name, "bookingReference": booking_reference},
        )
        logger.info("Flights cancelled", extra={"booking_reference": booking_reference})
        return result

    async def verify(self, booking_reference: str, last_name: str) -> GatewayBooking:
        payload = await self._request(
            "verify",
            "GET",
            "/bookings/retrieve",
            params={"bookingReference": booking_reference, "lastName": last_name},
        )
        return GatewayBooking.from_payload(payload)
