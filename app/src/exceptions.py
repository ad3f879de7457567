"""
Centralized exception handling for the Tripline Reservation Server.

This module provides:
- Base APIException class extending FastAPI's HTTPException.
- The reservation error taxonomy (validation, capacity, seat conflict,
  expiry, loyalty balance, partial itinerary) with distinct status codes
  and `X-Error` headers so clients can re-prompt precisely.
- Utility functions for formatting DB errors, logging, and routing exceptions.

Usage:
    - Raise specific exceptions in route handlers or services.
    - Use `handle()` to normalize raw exceptions (DB, Redis, Pydantic) into API-friendly responses.
"""

from traceback import format_exception
from logging import getLogger
from typing import List
from fastapi import status, HTTPException
from sqlalchemy.exc import IntegrityError
from psycopg2.errorcodes import UNIQUE_VIOLATION, FOREIGN_KEY_VIOLATION
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError
from sqlalchemy import Column


# ---------------------------------------------------------------------------
# Utility functions
# ---------------------------------------------------------------------------
def integrityErrorCode(e: IntegrityError) -> str | None:
    """
    Return the SQLSTATE of an integrity error.

    psycopg2 exposes it as `pgcode`, other drivers only carry a message,
    which is mapped onto the matching SQLSTATE.
    """
    code = getattr(e.orig, "pgcode", None)
    if code is not None:
        return code
    message = str(e.orig).upper()
    if "UNIQUE" in message:
        return UNIQUE_VIOLATION
    if "FOREIGN KEY" in message:
        return FOREIGN_KEY_VIOLATION
    return None


def formatIntegrityError(e: IntegrityError) -> str:
    """
    Format a database integrity error into a user-friendly message.
    """
    diag = getattr(e.orig, "diag", None)
    errorMessage: str = getattr(diag, "message_detail", None) or str(e.orig)
    errorMessage = errorMessage.translate({ord(i): None for i in '\\"\\.\\(\\)'})
    errorMessage = errorMessage.replace("Key ", "For ")
    errorMessage = errorMessage.replace("=", " value ")
    return errorMessage


def logException(e: Exception) -> None:
    """Log an exception with traceback using Uvicorn's error logger."""
    detail = str(format_exception(type(e), e, e.__traceback__))
    logger = getLogger("uvicorn.error")
    logger.error(detail)


# ---------------------------------------------------------------------------
# Base Exception
# ---------------------------------------------------------------------------
class APIException(HTTPException):
    """
    Base class for all application-specific exceptions.

    Provides default handling of status_code, detail, and headers.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    detail = None
    headers = None

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("status_code", self.status_code)
        kwargs.setdefault("detail", self.detail)
        kwargs.setdefault("headers", self.headers)
        super().__init__(*args, **kwargs)


# ---------------------------------------------------------------------------
# Exception handling entrypoint
# ---------------------------------------------------------------------------
def handle(e: Exception):
    """
    Normalize and re-raise exceptions as API-friendly errors.

    Converts raw exceptions from DB, Pydantic, Redis, etc. into
    corresponding APIException subclasses.
    """
    if isinstance(e, IntegrityError):
        code = integrityErrorCode(e)
        if code == UNIQUE_VIOLATION:
            raise UniqueViolation(formatIntegrityError(e))
        if code == FOREIGN_KEY_VIOLATION:
            raise ForeignKeyViolation(formatIntegrityError(e))
    if isinstance(e, PydanticValidationError):
        raise PydanticError(detail=e.errors())
    if isinstance(e, APIException):
        raise e
    if isinstance(e, RedisError):
        raise RedisDBError(detail=str(e))

    logException(e)
    raise e


# ---------------------------------------------------------------------------
# Generic exception classes
# ---------------------------------------------------------------------------
class PydanticError(APIException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    headers = {"X-Error": "PydanticError"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class UniqueViolation(APIException):
    status_code = status.HTTP_409_CONFLICT
    headers = {"X-Error": "UniqueViolation"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class ForeignKeyViolation(APIException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    headers = {"X-Error": "ForeignKeyViolation"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class UnknownValue(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    headers = {"X-Error": "UnknownValue"}

    def __init__(self, column_name: Column):
        detail = f"Invalid {column_name.name} is provided"
        super().__init__(detail=detail)


class InvalidValue(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "InvalidValue"}

    def __init__(self, column_name: Column):
        detail = f"Invalid {column_name.name} is provided"
        super().__init__(detail=detail)


class InvalidIdentifier(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Invalid ID provided"
    headers = {"X-Error": "InvalidIdentifier"}


class InvalidStateTransition(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "InvalidStateTransition"}

    def __init__(self, column_name: Column):
        detail = f"The {column_name.name} cannot be set to the provided value"
        super().__init__(detail=detail)


class InactiveResource(APIException):
    status_code = status.HTTP_412_PRECONDITION_FAILED
    headers = {"X-Error": "InactiveResource"}

    def __init__(self, orm_class):
        detail = (
            f"The status of {orm_class.__name__} is not in an active or useful state"
        )
        super().__init__(detail=detail)


class LockAcquireTimeout(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "LockAcquireTimeout"}
    detail = "Lock acquisition timed out"


class RedisDBError(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    headers = {"X-Error": "RedisAPIError"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


# ---------------------------------------------------------------------------
# Reservation exception classes
# ---------------------------------------------------------------------------
class ValidationError(APIException):
    """Malformed or missing search, booking or redemption input."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    headers = {"X-Error": "ValidationError"}

    def __init__(self, detail: str | dict = "Invalid input provided"):
        super().__init__(detail=detail)


class InvalidSeatNumber(ValidationError):
    headers = {"X-Error": "InvalidSeatNumber"}

    def __init__(self, seats: List[int] | None = None):
        detail = {
            "message": "Seat numbers must be unique and within the bus capacity",
            "seats": sorted(seats or []),
        }
        super().__init__(detail=detail)


class InvalidPointsRequest(ValidationError):
    headers = {"X-Error": "InvalidPointsRequest"}

    def __init__(self, available_points: int = 0, requested_points: int = 0):
        detail = {
            "message": "Invalid number of points requested",
            "available_points": available_points,
            "requested_points": requested_points,
        }
        super().__init__(detail=detail)


class CapacityError(APIException):
    """Seat count does not fit the request or the trip."""

    status_code = status.HTTP_409_CONFLICT
    detail = "The trip cannot take the requested number of seats"
    headers = {"X-Error": "CapacityError"}


class SeatCountMismatch(CapacityError):
    headers = {"X-Error": "SeatCountMismatch"}

    def __init__(self, passenger_count: int = 0, seat_count: int = 0):
        detail = {
            "message": "Number of selected seats must equal the passenger count",
            "passenger_count": passenger_count,
            "seat_count": seat_count,
        }
        super().__init__(detail=detail)


class InsufficientSeats(CapacityError):
    headers = {"X-Error": "InsufficientSeats"}

    def __init__(self, available_seats: int = 0, requested_seats: int = 0):
        detail = {
            "message": "The trip does not have enough available seats",
            "available_seats": available_seats,
            "requested_seats": requested_seats,
        }
        super().__init__(detail=detail)


class SeatConflictError(APIException):
    status_code = status.HTTP_409_CONFLICT
    headers = {"X-Error": "SeatConflictError"}

    def __init__(self, seats: List[int] | None = None):
        detail = {
            "message": "Selected seats were just taken, pick other seats",
            "seats": sorted(seats or []),
        }
        super().__init__(detail=detail)


class ReservationExpiredError(APIException):
    status_code = status.HTTP_410_GONE
    detail = "Reservation window expired, search again"
    headers = {"X-Error": "ReservationExpiredError"}


class InsufficientPointsError(APIException):
    status_code = status.HTTP_409_CONFLICT
    headers = {"X-Error": "InsufficientPointsError"}

    def __init__(self, available_points: int = 0, requested_points: int = 0):
        detail = {
            "message": "Insufficient points balance",
            "available_points": available_points,
            "requested_points": requested_points,
        }
        super().__init__(detail=detail)


class PartialBookingFailure(APIException):
    status_code = status.HTTP_409_CONFLICT
    headers = {"X-Error": "PartialBookingFailure"}

    def __init__(self, cause: APIException | None = None):
        detail = {
            "message": "Return leg could not be booked, the outbound leg was not kept",
            "cause": None if cause is None else cause.headers["X-Error"],
            "cause_detail": None if cause is None else cause.detail,
        }
        super().__init__(detail=detail)
