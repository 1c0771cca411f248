"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

from opentelemetry import trace, metrics
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import Counter, Histogram, generate_latest, CollectorRegistry
import structlog

from .config import settings

SERVICE_NAME = "travel-booking-api"

# Prometheus metrics
REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=REGISTRY
)

# Business metrics
BOOKINGS_CREATED = Counter(
    'bookings_created_total',
    'Total bookings created by checkout',
    ['status'],
    registry=REGISTRY
)

BOOKINGS_CANCELLED = Counter(
    'bookings_cancelled_total',
    'Total bookings cancelled',
    ['initiator'],
    registry=REGISTRY
)

FORCED_CANCELLATIONS = Counter(
    'forced_cancellations_total',
    'Bookings cancelled by forced availability reductions',
    registry=REGISTRY
)

AVAILABILITY_CONFLICTS = Counter(
    'availability_conflicts_total',
    'Availability updates rejected because bookings exceed the new value',
    registry=REGISTRY
)

RESERVATIONS_REJECTED = Counter(
    'inventory_reservations_rejected_total',
    'Reservations rejected for insufficient availability',
    registry=REGISTRY
)

CHECKOUT_COMPENSATIONS = Counter(
    'checkout_compensations_total',
    'Checkouts whose inventory reservation was rolled back',
    ['outcome'],
    registry=REGISTRY
)

GATEWAY_REQUESTS = Counter(
    'flight_gateway_requests_total',
    'Requests sent to the external flight system',
    ['operation', 'outcome'],
    registry=REGISTRY
)

GATEWAY_DURATION = Histogram(
    'flight_gateway_request_duration_seconds',
    'Duration of external flight system requests',
    ['operation'],
    registry=REGISTRY
)


def setup_structured_logging():
    """Configure structured logging with structlog."""

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict['trace_id'] = format(ctx.trace_id, '032x')
            event_dict['span_id'] = format(ctx.span_id, '016x')
        return event_dict

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _resource() -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": "1.0.0",
        "environment": settings.environment,
    })


def setup_tracing():
    """Setup OpenTelemetry tracing."""
    provider = TracerProvider(resource=_resource())

    # Export only when an OTLP endpoint is configured
    if settings.otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint))
        )

    trace.set_tracer_provider(provider)
    return trace.get_tracer(__name__)


def setup_metrics():
    """Setup OpenTelemetry metrics."""
    if settings.otlp_endpoint:
        otlp_exporter = OTLPMetricExporter(endpoint=settings.otlp_endpoint)
        reader = PeriodicExportingMetricReader(exporter=otlp_exporter, export_interval_millis=60000)
        metrics.set_meter_provider(MeterProvider(resource=_resource(), metric_readers=[reader]))

    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine):
    """Instrument SQLAlchemy with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


class MetricsCollector:
    """Collector for business metrics."""

    @staticmethod
    def record_request(method: str, endpoint: str, status_code: int, duration: float):
        REQUEST_COUNT.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
        REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration)

    @staticmethod
    def record_booking_created(status: str):
        """Record a booking created by checkout."""
        BOOKINGS_CREATED.labels(status=status).inc()

    @staticmethod
    def record_booking_cancelled(initiator: str):
        """Record a booking cancellation (user, owner or forced)."""
        BOOKINGS_CANCELLED.labels(initiator=initiator).inc()

    @staticmethod
    def record_forced_cancellation():
        FORCED_CANCELLATIONS.inc()

    @staticmethod
    def record_availability_conflict():
        AVAILABILITY_CONFLICTS.inc()

    @staticmethod
    def record_reservation_rejected():
        RESERVATIONS_REJECTED.inc()

    @staticmethod
    def record_compensation(outcome: str):
        CHECKOUT_COMPENSATIONS.labels(outcome=outcome).inc()

    @staticmethod
    def record_gateway_request(operation: str, outcome: str, duration: float):
        """Record one call to the external flight system."""
        GATEWAY_REQUESTS.labels(operation=operation, outcome=outcome).inc()
        GATEWAY_DURATION.labels(operation=operation).observe(duration)


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()
