"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

from typing import Any, Dict, List, Optional
from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging
import uuid
from datetime import date

logger = logging.getLogger(__name__)


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt

    Every problem carries a machine-checkable ``code`` next to the
    human-readable ``detail``.
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        code: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            code: Machine-checkable error code
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.code = code
        self.detail = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
            "code": self.code,
        }

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )


class ValidationError(ProblemDetailsException):
    """Exception for request validation errors."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        errors: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if errors:
            extensions["errors"] = errors

        super().__init__(
            status_code=400,
            title="Validation Error",
            code="VALIDATION_ERROR",
            detail=detail,
            type_uri="https://example.com/problems/validation-error",
            instance=instance,
            extensions=extensions,
        )


class AuthenticationError(ProblemDetailsException):
    """Exception for authentication errors."""

    def __init__(
        self,
        detail: str = "Authentication credentials are required",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=401,
            title="Authentication Required",
            code="AUTHENTICATION_REQUIRED",
            detail=detail,
            type_uri="https://example.com/problems/authentication-required",
            instance=instance,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(ProblemDetailsException):
    """Exception for authorization errors."""

    def __init__(
        self,
        detail: str = "Insufficient permissions to access this resource",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=403,
            title="Access Forbidden",
            code="FORBIDDEN",
            detail=detail,
            type_uri="https://example.com/problems/access-forbidden",
            instance=instance,
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            code="NOT_FOUND",
            detail=detail,
            type_uri="https://example.com/problems/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class IdempotencyMismatchError(ProblemDetailsException):
    """Idempotency key reused with a different request body."""

    def __init__(self, idempotency_key: str):
        super().__init__(
            status_code=422,
            title="Idempotency Key Mismatch",
            code="IDEMPOTENCY_KEY_MISMATCH",
            detail="Request body differs from original request with same idempotency key",
            type_uri="https://example.com/problems/idempotency-mismatch",
            extensions={"idempotency_key": idempotency_key},
        )


# Business logic exceptions

class InsufficientAvailability(ProblemDetailsException):
    """Raised when a room type cannot take the requested rooms on some date."""

    def __init__(
        self,
        room_type_id: str,
        day: date,
        requested: int,
        available: int,
        instance: Optional[str] = None,
    ):
        self.room_type_id = room_type_id
        self.day = day
        self.requested = requested
        self.available = available

        super().__init__(
            status_code=400,
            title="Insufficient Availability",
            code="INSUFFICIENT_AVAILABILITY",
            detail=(
                f"Not enough rooms available on {day.isoformat()}: "
                f"requested {requested}, available {available}"
            ),
            type_uri="https://example.com/problems/insufficient-availability",
            instance=instance,
            extensions={
                "date": day.isoformat(),
                "room_type_id": room_type_id,
                "requested": requested,
                "available": available,
                "retryable": False,
            },
        )


class GatewayError(ProblemDetailsException):
    """Raised when the external flight system rejects or fails a request."""

    def __init__(
        self,
        operation: str,
        message: str,
        status: Optional[int] = None,
    ):
        self.operation = operation
        self.remote_message = message
        self.remote_status = status

        extensions: Dict[str, Any] = {"operation": operation, "retryable": True}
        if status is not None:
            extensions["remote_status"] = status

        super().__init__(
            status_code=400,
            title="Flight Gateway Error",
            code="GATEWAY_ERROR",
            detail=message,
            type_uri="https://example.com/problems/gateway-error",
            extensions=extensions,
        )


class InvalidStateTransition(ProblemDetailsException):
    """Raised when an entity cannot move from its current status."""

    def __init__(
        self,
        entity: str,
        current_status: str,
        target_status: str,
        detail: Optional[str] = None,
    ):
        self.current_status = current_status
        self.target_status = target_status

        super().__init__(
            status_code=400,
            title="Invalid State Transition",
            code="INVALID_STATE_TRANSITION",
            detail=detail or f"Cannot change {entity} from {current_status} to {target_status}",
            type_uri="https://example.com/problems/invalid-state-transition",
            extensions={
                "entity": entity,
                "current_status": current_status,
                "target_status": target_status,
            },
        )


class AvailabilityConflict(ProblemDetailsException):
    """
    Raised when an owner lowers availability below the booked count without
    forcing cancellations.

    The top-level body describes the first conflicting date; ``conflicts``
    lists every conflicting date and ``results`` the outcome of the whole
    batch.
    """

    def __init__(
        self,
        conflicts: List[Dict[str, Any]],
        results: Optional[List[Dict[str, Any]]] = None,
    ):
        self.conflicts = conflicts
        first = conflicts[0]

        super().__init__(
            status_code=409,
            title="Availability Conflict",
            code="AVAILABILITY_CONFLICT",
            detail=(
                f"Reducing availability on {first['date']} to "
                f"{first['requestedAvailability']} would leave "
                f"{first['existingBookings']} booked rooms without capacity"
            ),
            type_uri="https://example.com/problems/availability-conflict",
            extensions={
                **first,
                "conflicts": conflicts,
                "results": results or [],
            },
        )


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.problem_details,
        headers=exc.headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Convert request schema errors into a 400 problem with violations."""
    violations = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        violations.append({
            "field": ".".join(location) or "body",
            "message": error.get("msg", "Invalid value"),
            "code": error.get("type"),
        })

    return JSONResponse(
        status_code=400,
        content={
            "type": "https://example.com/problems/validation-error",
            "title": "Validation Error",
            "status": 400,
            "code": "VALIDATION_ERROR",
            "detail": "The request data failed validation",
            "instance": str(request.url.path),
            "violations": violations,
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    from .dates import utcnow

    error_id = str(uuid.uuid4())
    logger.error(
        "Unhandled exception",
        extra={"error_id": error_id, "path": request.url.path},
        exc_info=exc,
    )

    problem_details = {
        "type": "https://example.com/problems/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "code": "INTERNAL_ERROR",
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "error_id": error_id,
        "timestamp": utcnow().isoformat() + "Z",
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
    )
