"""
Trip projection and reconciliation.

A schedule implies one trip on every service date it fires. Those trips are
computed on demand and merged with the persisted trips of the same route and
day. A route never offers two departures in the same minute: a persisted
trip always wins over the projection of its slot.

All day boundaries and schedule times of day are evaluated in the local
service calendar (`TMZ_LOCAL`).
"""

from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from app.src.db import Bus, Route, Schedule, Trip
from app.src.enums import FrequencyType, TripStatus
from app.src.schemas import PersistedTrip, ProjectedTrip, TripView
from app.src.constants import (
    AUTO_TRIP_NUMBER_PREFIX,
    DEFAULT_BUS_CAPACITY,
    PROJECTED_TRIP_PREFIX,
    TMZ_LOCAL,
    TMZ_PRIMARY,
)


def dayWindow(serviceDate: date) -> Tuple[datetime, datetime]:
    """Return the half open `[start, end)` window of a local calendar day."""
    start = datetime.combine(serviceDate, time.min, tzinfo=TMZ_LOCAL)
    end = datetime.combine(serviceDate + timedelta(days=1), time.min, tzinfo=TMZ_LOCAL)
    return start, end


def minuteKey(moment: datetime) -> datetime:
    """Truncate a timestamp to the minute, in UTC, for slot comparison."""
    return moment.astimezone(TMZ_PRIMARY).replace(second=0, microsecond=0)


def fires(schedule: Schedule, serviceDate: date) -> bool:
    """
    Check whether a schedule implies a trip on the given date.

    `DAILY` always fires. `WEEKLY` and `SPECIFIC_DAYS` fire only when the
    ISO weekday of the date is in the schedule's day list, so an empty list
    never fires.
    """
    if not schedule.active:
        return False
    if schedule.frequency_type == FrequencyType.DAILY:
        return True
    days = schedule.frequency or []
    return serviceDate.isoweekday() in days


def projectedID(scheduleID: int, serviceDate: date) -> str:
    return f"{PROJECTED_TRIP_PREFIX}-{scheduleID}-{serviceDate.isoformat()}"


def parseProjectedID(reference: str) -> Optional[Tuple[int, date]]:
    """
    Split a projected trip identifier into schedule id and service date.

    Returns None when the reference is not a well formed projected id.
    """
    prefix = f"{PROJECTED_TRIP_PREFIX}-"
    if not reference.startswith(prefix):
        return None
    scheduleID, _, isoDate = reference[len(prefix) :].partition("-")
    if not scheduleID.isdigit():
        return None
    try:
        return int(scheduleID), date.fromisoformat(isoDate)
    except ValueError:
        return None


def projectTrip(
    schedule: Schedule, route: Route, bus: Optional[Bus], serviceDate: date
) -> ProjectedTrip:
    departureAt = datetime.combine(
        serviceDate, schedule.departure_time, tzinfo=TMZ_LOCAL
    ).replace(second=0, microsecond=0)
    arrivalAt = departureAt + timedelta(hours=float(schedule.duration_hours))
    capacity = bus.capacity if bus is not None else DEFAULT_BUS_CAPACITY
    return ProjectedTrip(
        id=projectedID(schedule.id, serviceDate),
        schedule_id=schedule.id,
        service_date=serviceDate,
        route_id=route.id,
        origin=route.origin,
        destination=route.destination,
        bus_id=bus.id if bus is not None else None,
        bus_name=bus.name if bus is not None else None,
        trip_number=f"{AUTO_TRIP_NUMBER_PREFIX}-{schedule.id}-{serviceDate:%Y%m%d}",
        departure_at=departureAt,
        arrival_at=arrivalAt,
        fare=schedule.fare,
        status=TripStatus.SCHEDULED,
        total_seats=capacity,
        available_seats=capacity,
    )


def projectTrips(
    schedules: Iterable[Schedule],
    route: Route,
    buses: Dict[int, Bus],
    serviceDate: date,
) -> List[ProjectedTrip]:
    """
    Project every schedule of the route that fires on the date.

    Args:
        schedules: Candidate schedules. Schedules of other routes are ignored.
        route: Route being searched.
        buses: Buses by id, for capacity and display name.
        serviceDate: Local calendar date.
    """
    projected = []
    for schedule in schedules:
        if schedule.route_id != route.id or not fires(schedule, serviceDate):
            continue
        projected.append(
            projectTrip(schedule, route, buses.get(schedule.bus_id), serviceDate)
        )
    return projected


def persistedTrip(trip: Trip, route: Route, bus: Optional[Bus]) -> PersistedTrip:
    return PersistedTrip(
        id=trip.id,
        route_id=trip.route_id,
        origin=route.origin,
        destination=route.destination,
        bus_id=trip.bus_id,
        bus_name=bus.name if bus is not None else None,
        schedule_id=trip.schedule_id,
        trip_number=trip.trip_number,
        departure_at=trip.departure_at,
        arrival_at=trip.arrival_at,
        fare=trip.fare,
        status=trip.status,
        total_seats=trip.total_seats,
        available_seats=trip.available_seats,
    )


def reconcileTrips(
    persisted: List[PersistedTrip],
    projected: List[ProjectedTrip],
    occupied: Iterable[datetime],
    passengerCount: int = 1,
) -> List[TripView]:
    """
    Merge persisted and projected trips of one route and day.

    Args:
        persisted: Bookable persisted trips.
        projected: Output of `projectTrips`.
        occupied: Departure times of every persisted trip of the route and
            day, bookable or not. A projection in any of these minutes is
            dropped.
        passengerCount: Projections that cannot seat the party are dropped.

    Returns:
        Trips sorted by departure, persisted first on equal departure.
    """
    taken = {minuteKey(moment) for moment in occupied}
    taken.update(minuteKey(trip.departure_at) for trip in persisted)
    merged: List[TripView] = list(persisted)
    for trip in projected:
        key = minuteKey(trip.departure_at)
        if key in taken or trip.available_seats < passengerCount:
            continue
        taken.add(key)
        merged.append(trip)
    merged.sort(key=lambda trip: (trip.departure_at, trip.is_projected))
    return merged
