"""
Guard checks for the reservation engine.

This module centralizes checks such as:
- State transition enforcement
- Trip bookability
- Search date rules

All functions raise appropriate exceptions from `app.src.exceptions`
when validation fails, ensuring consistent error handling.
"""

from datetime import date, datetime
from typing import Any, Optional
from sqlalchemy import Column

from app.src import exceptions
from app.src.db import Trip
from app.src.enums import TripStatus, TripType
from app.src.functions import isValidTransition

BOOKABLE_TRIP_STATUS = (TripStatus.SCHEDULED, TripStatus.BOARDING)


def stateTransition(
    transitions: dict[Any, list[Any]], old_state: Any, new_state: Any, state: Column
) -> bool:
    """
    Validate whether a state transition is allowed.

    Args:
        transitions (dict[Any, list[Any]]): Mapping of valid transitions.
        old_state (Any): Current state value.
        new_state (Any): Desired new state value.
        state (Column): SQLAlchemy column representing the state
            (used to format error messages).

    Raises:
        exceptions.InvalidStateTransition: If the transition is not permitted.
    """
    if not isValidTransition(transitions, old_state, new_state):
        raise exceptions.InvalidStateTransition(state)
    return True


def bookableTrip(trip, now: datetime) -> bool:
    """
    Ensure a persisted or projected trip still takes bookings.

    Raises:
        exceptions.InactiveResource: The trip is departed, finished or
            cancelled, or its departure time has passed.
    """
    if trip.status not in BOOKABLE_TRIP_STATUS or trip.departure_at <= now:
        raise exceptions.InactiveResource(Trip)
    return True


def searchDates(
    tripType: TripType, travelDate: date, returnDate: Optional[date], today: date
) -> bool:
    if travelDate < today:
        raise exceptions.ValidationError("Travel date cannot be in the past")
    if tripType == TripType.RETURN:
        if returnDate is None:
            raise exceptions.ValidationError("Return date is required for a return trip")
        if returnDate < travelDate:
            raise exceptions.ValidationError("Return date cannot be before travel date")
    return True


def passengerCount(count: int) -> bool:
    if count < 1:
        raise exceptions.ValidationError("At least one passenger is required")
    return True
