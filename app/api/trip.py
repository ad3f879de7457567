from datetime import date, datetime
from decimal import Decimal
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from app.src.db import Booking, Bus, Route, Schedule, Trip, sessionMaker
from app.src import exceptions, validators, getters
from app.src.loggers import logEvent
from app.src.redis import acquireLock, releaseLock
from app.src.inventory import expireHolds, releaseBookings
from app.src.enums import OrderIn, TripStatus, TripType, BookingStatus
from app.src.constants import MAX_PASSENGER_COUNT, TMZ_LOCAL, TMZ_PRIMARY
from app.src.schemas import ProjectedTrip, PersistedTrip, TripView
from app.src.projection import (
    dayWindow,
    fires,
    minuteKey,
    parseProjectedID,
    persistedTrip,
    projectTrip,
    projectTrips,
    reconcileTrips,
)
from app.src.functions import (
    asLocal,
    enumStr,
    fuseExceptionResponses,
    updateIfChanged,
)
from app.src.urls import URL_TRIP, URL_TRIP_SEARCH

route_public = APIRouter()
route_operator = APIRouter()


## Output Schema
class TripSchema(BaseModel):
    id: int
    route_id: int
    bus_id: Optional[int]
    schedule_id: Optional[int]
    trip_number: str
    departure_at: datetime
    arrival_at: datetime
    fare: Decimal
    status: int
    total_seats: int
    available_seats: int
    updated_on: Optional[datetime]
    created_on: datetime


class SearchResultSchema(BaseModel):
    outbound: List[TripView]
    inbound: Optional[List[TripView]]


## Input Forms
class CreateForm(BaseModel):
    route_id: int = Field(Form())
    bus_id: int = Field(Form())
    trip_number: str | None = Field(Form(default=None, max_length=32))
    departure_at: datetime = Field(Form())
    arrival_at: datetime = Field(Form())
    fare: Decimal = Field(Form(gt=0))


class UpdateForm(BaseModel):
    id: int = Field(Form())
    bus_id: int | None = Field(Form(default=None))
    trip_number: str | None = Field(Form(default=None, max_length=32))
    fare: Decimal | None = Field(Form(default=None, gt=0))
    status: TripStatus | None = Field(
        Form(default=None, description=enumStr(TripStatus))
    )


## Query Parameters
class SearchParams(BaseModel):
    origin: str = Field(Query(max_length=64))
    destination: str = Field(Query(max_length=64))
    travel_date: date = Field(Query())
    return_date: date | None = Field(Query(default=None))
    passenger_count: int = Field(Query(default=1, le=MAX_PASSENGER_COUNT))
    trip_type: TripType = Field(
        Query(default=TripType.ONE_WAY, description=enumStr(TripType))
    )


class OrderBy(IntEnum):
    id = 1
    departure_at = 2
    updated_on = 3
    created_on = 4


class QueryParams(BaseModel):
    route_id: int | None = Field(Query(default=None))
    bus_id: int | None = Field(Query(default=None))
    schedule_id: int | None = Field(Query(default=None))
    trip_number: str | None = Field(Query(default=None))
    status: TripStatus | None = Field(
        Query(default=None, description=enumStr(TripStatus))
    )
    # id based
    id: int | None = Field(Query(default=None))
    id_ge: int | None = Field(Query(default=None))
    id_le: int | None = Field(Query(default=None))
    id_list: List[int] | None = Field(Query(default=None))
    # departure_at based
    departure_at_ge: datetime | None = Field(Query(default=None))
    departure_at_le: datetime | None = Field(Query(default=None))
    # created_on based
    created_on_ge: datetime | None = Field(Query(default=None))
    created_on_le: datetime | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(
        Query(default=OrderBy.departure_at, description=enumStr(OrderBy))
    )
    order_in: OrderIn = Field(Query(default=OrderIn.ASC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
def slotKey(routeID: int, departureAt: datetime) -> str:
    return f"{routeID}:{minuteKey(departureAt):%Y%m%d%H%M}"


def slotTrip(session: Session, routeID: int, departureAt: datetime) -> Trip | None:
    """Persisted trip occupying a route's departure minute, if any."""
    return (
        session.query(Trip)
        .filter(Trip.route_id == routeID)
        .filter(Trip.departure_at == minuteKey(departureAt))
        .first()
    )


def tripView(session: Session, trip: Trip) -> PersistedTrip:
    route = session.query(Route).filter(Route.id == trip.route_id).first()
    bus = getters.buses(session, [trip.bus_id]).get(trip.bus_id)
    return persistedTrip(trip, route, bus)


def searchTrips(
    session: Session,
    origin: str,
    destination: str,
    serviceDate: date,
    passengerCount: int = 1,
    now: datetime | None = None,
) -> List[TripView]:
    """
    List the bookable trips of a route on a local calendar date.

    Persisted trips in `SCHEDULED` or `BOARDING` status with room for the
    party are merged with the trips projected from the route's active
    schedules. A projection is dropped when any persisted trip of the day,
    bookable or not, already departs in the same minute.
    Lapsed holds on the day's trips are released first, so the seats
    they held count as available again.
    Dates in the past are not rejected here.
    """
    route = getters.route(session, origin, destination)
    if route is None:
        return []

    start, end = dayWindow(serviceDate)
    dayQuery = (
        session.query(Trip)
        .filter(Trip.route_id == route.id)
        .filter(Trip.departure_at >= start, Trip.departure_at < end)
    )
    if now is None:
        now = datetime.now(TMZ_PRIMARY)
    tripIDs = [tripID for (tripID,) in dayQuery.with_entities(Trip.id)]
    if tripIDs and expireHolds(session, now, tripIDs):
        session.commit()

    occupied = [departure for (departure,) in dayQuery.with_entities(Trip.departure_at)]
    bookable = (
        dayQuery.populate_existing()
        .filter(Trip.status.in_(validators.BOOKABLE_TRIP_STATUS))
        .filter(Trip.available_seats >= passengerCount)
        .all()
    )
    schedules = (
        session.query(Schedule)
        .filter(Schedule.route_id == route.id)
        .filter(Schedule.active.is_(True))
        .all()
    )

    buses = getters.buses(
        session,
        [trip.bus_id for trip in bookable] + [item.bus_id for item in schedules],
    )
    persisted = [persistedTrip(trip, route, buses.get(trip.bus_id)) for trip in bookable]
    projected = projectTrips(schedules, route, buses, serviceDate)
    return reconcileTrips(persisted, projected, occupied, passengerCount)


def resolveTrip(session: Session, reference: str) -> Trip | ProjectedTrip:
    """
    Turn a client trip reference into a persisted row or a projected trip.

    Numeric references are persisted trip ids. Projected references resolve
    to the persisted row of their slot once the slot has been materialized.

    Raises:
        exceptions.UnknownValue: No such trip, or the schedule does not
            fire on the referenced date.
    """
    reference = str(reference).strip()
    if reference.isdigit():
        trip = session.query(Trip).filter(Trip.id == int(reference)).first()
        if trip is None:
            raise exceptions.UnknownValue(Booking.trip_id)
        return trip

    parsed = parseProjectedID(reference)
    if parsed is None:
        raise exceptions.UnknownValue(Booking.trip_id)
    scheduleID, serviceDate = parsed
    schedule = session.query(Schedule).filter(Schedule.id == scheduleID).first()
    if schedule is None or not fires(schedule, serviceDate):
        raise exceptions.UnknownValue(Booking.trip_id)

    route = session.query(Route).filter(Route.id == schedule.route_id).first()
    bus = getters.buses(session, [schedule.bus_id]).get(schedule.bus_id)
    projected = projectTrip(schedule, route, bus, serviceDate)
    trip = slotTrip(session, projected.route_id, projected.departure_at)
    return trip if trip is not None else projected


def materializeTrip(session: Session, projected: ProjectedTrip) -> Trip:
    """
    Persist a projected trip and return the row.

    Runs under a mutex on the route's departure minute and commits on its
    own. When the slot was taken meanwhile, the existing row is returned
    so both callers book against the same trip.
    """
    lock = None
    try:
        lock = acquireLock(
            Trip.__tablename__, slotKey(projected.route_id, projected.departure_at)
        )
        trip = slotTrip(session, projected.route_id, projected.departure_at)
        if trip is None:
            trip = Trip(
                route_id=projected.route_id,
                bus_id=projected.bus_id,
                schedule_id=projected.schedule_id,
                trip_number=projected.trip_number,
                departure_at=minuteKey(projected.departure_at),
                arrival_at=projected.arrival_at,
                fare=projected.fare,
                status=TripStatus.SCHEDULED,
                total_seats=projected.total_seats,
                available_seats=projected.total_seats,
            )
            session.add(trip)
            session.commit()
            session.refresh(trip)
        return trip
    finally:
        releaseLock(lock)


def updateTrip(session: Session, trip: Trip, fParam: UpdateForm, now: datetime):
    tripStatusTransition = {
        TripStatus.SCHEDULED: [TripStatus.BOARDING, TripStatus.CANCELLED],
        TripStatus.BOARDING: [TripStatus.DEPARTED, TripStatus.CANCELLED],
        TripStatus.DEPARTED: [TripStatus.COMPLETED],
        TripStatus.COMPLETED: [],
        TripStatus.CANCELLED: [],
    }
    updateIfChanged(trip, fParam, [Trip.trip_number.key, Trip.fare.key])
    if fParam.bus_id is not None and trip.bus_id != fParam.bus_id:
        bus = session.query(Bus).filter(Bus.id == fParam.bus_id).first()
        if bus is None:
            raise exceptions.UnknownValue(Trip.bus_id)
        liveBookings = session.query(Booking.seat_number).filter(
            Booking.trip_id == trip.id,
            Booking.booking_status != BookingStatus.CANCELLED,
        )
        highestSeat = max((seat for (seat,) in liveBookings), default=0)
        if highestSeat > bus.capacity:
            raise exceptions.InvalidValue(Trip.bus_id)
        trip.available_seats += bus.capacity - trip.total_seats
        trip.total_seats = bus.capacity
        trip.bus_id = bus.id
    if fParam.status is not None and trip.status != fParam.status:
        validators.stateTransition(
            tripStatusTransition, trip.status, fParam.status, Trip.status
        )
        if fParam.status == TripStatus.CANCELLED:
            bookings = (
                session.query(Booking)
                .filter(Booking.trip_id == trip.id)
                .filter(Booking.booking_status != BookingStatus.CANCELLED)
                .all()
            )
            session.flush()
            releaseBookings(session, bookings, now)
            session.expire(trip, [Trip.available_seats.key])
        trip.status = fParam.status


def searchTrip(session: Session, qParam: QueryParams) -> List[Trip]:
    query = session.query(Trip)

    # Filters
    if qParam.route_id is not None:
        query = query.filter(Trip.route_id == qParam.route_id)
    if qParam.bus_id is not None:
        query = query.filter(Trip.bus_id == qParam.bus_id)
    if qParam.schedule_id is not None:
        query = query.filter(Trip.schedule_id == qParam.schedule_id)
    if qParam.trip_number is not None:
        query = query.filter(Trip.trip_number.ilike(f"%{qParam.trip_number}%"))
    if qParam.status is not None:
        query = query.filter(Trip.status == qParam.status)
    # id based
    if qParam.id is not None:
        query = query.filter(Trip.id == qParam.id)
    if qParam.id_ge is not None:
        query = query.filter(Trip.id >= qParam.id_ge)
    if qParam.id_le is not None:
        query = query.filter(Trip.id <= qParam.id_le)
    if qParam.id_list is not None:
        query = query.filter(Trip.id.in_(qParam.id_list))
    # departure_at based
    if qParam.departure_at_ge is not None:
        query = query.filter(Trip.departure_at >= asLocal(qParam.departure_at_ge))
    if qParam.departure_at_le is not None:
        query = query.filter(Trip.departure_at <= asLocal(qParam.departure_at_le))
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(Trip.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        query = query.filter(Trip.created_on <= qParam.created_on_le)

    # Ordering
    orderingAttr = getattr(Trip, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttr.asc())
    else:
        query = query.order_by(orderingAttr.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Public]
@route_public.get(
    URL_TRIP_SEARCH,
    tags=["Trip"],
    response_model=SearchResultSchema,
    responses=fuseExceptionResponses(
        [exceptions.ValidationError("Travel date cannot be in the past")]
    ),
    description="""
    Search the bookable trips of a route for a date, and for a return date when trip_type is RETURN.
    Persisted trips and trips projected from the schedules are merged, a projected trip is never offered in a minute already taken by a persisted trip.
    Projected trips carry `is_projected=true` and a `projected-<schedule>-<date>` identifier that can be booked directly.
    Dates are local calendar dates. Past dates are rejected.
    """,
)
async def search_trip(qParam: SearchParams = Depends()):
    try:
        session = sessionMaker()
        validators.passengerCount(qParam.passenger_count)
        today = datetime.now(TMZ_LOCAL).date()
        validators.searchDates(
            qParam.trip_type, qParam.travel_date, qParam.return_date, today
        )

        outbound = searchTrips(
            session,
            qParam.origin,
            qParam.destination,
            qParam.travel_date,
            qParam.passenger_count,
        )
        inbound = None
        if qParam.trip_type == TripType.RETURN:
            inbound = searchTrips(
                session,
                qParam.destination,
                qParam.origin,
                qParam.return_date,
                qParam.passenger_count,
            )
        return {"outbound": outbound, "inbound": inbound}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Operator]
@route_operator.post(
    URL_TRIP,
    tags=["Trip"],
    response_model=TripSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.UnknownValue(Trip.route_id),
            exceptions.InvalidValue(Trip.departure_at),
            exceptions.UniqueViolation("A trip already departs on this route at this time"),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Create a persisted trip ahead of time.
    Naive timestamps are read in the local service timezone, the departure is truncated to the minute.
    The seat capacity is taken from the bus.
    A route cannot have two trips departing in the same minute.
    Log the trip creation activity.
    """,
)
async def create_trip(
    fParam: CreateForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    lock = None
    try:
        session = sessionMaker()
        route = session.query(Route).filter(Route.id == fParam.route_id).first()
        if route is None:
            raise exceptions.UnknownValue(Trip.route_id)
        bus = session.query(Bus).filter(Bus.id == fParam.bus_id).first()
        if bus is None:
            raise exceptions.UnknownValue(Trip.bus_id)

        departureAt = minuteKey(asLocal(fParam.departure_at))
        arrivalAt = asLocal(fParam.arrival_at)
        if departureAt <= datetime.now(TMZ_PRIMARY):
            raise exceptions.InvalidValue(Trip.departure_at)
        if arrivalAt <= departureAt:
            raise exceptions.InvalidValue(Trip.arrival_at)

        lock = acquireLock(Trip.__tablename__, slotKey(route.id, departureAt))
        if slotTrip(session, route.id, departureAt) is not None:
            raise exceptions.UniqueViolation(
                "A trip already departs on this route at this time"
            )
        tripNumber = fParam.trip_number
        if tripNumber is None:
            tripNumber = f"TRP-{route.id}-{departureAt.astimezone(TMZ_LOCAL):%Y%m%d%H%M}"

        trip = Trip(
            route_id=route.id,
            bus_id=bus.id,
            trip_number=tripNumber,
            departure_at=departureAt,
            arrival_at=arrivalAt,
            fare=fParam.fare,
            status=TripStatus.SCHEDULED,
            total_seats=bus.capacity,
            available_seats=bus.capacity,
        )
        session.add(trip)
        session.commit()
        session.refresh(trip)

        tripData = jsonable_encoder(trip)
        logEvent(request_info, tripData)
        return tripData
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(lock)
        session.close()


@route_operator.patch(
    URL_TRIP,
    tags=["Trip"],
    response_model=TripSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidIdentifier(),
            exceptions.UnknownValue(Trip.bus_id),
            exceptions.InvalidValue(Trip.bus_id),
            exceptions.InvalidStateTransition(Trip.status),
        ]
    ),
    description="""
    Update an existing trip by ID.
    A new bus must seat every live booking, the seat counts follow the new capacity.
    Cancelling a trip cancels all of its live bookings and frees their seats.
    Log the trip update activity.

    Allowed status transitions:
        SCHEDULED → BOARDING, CANCELLED
        BOARDING → DEPARTED, CANCELLED
        DEPARTED → COMPLETED
    """,
)
async def update_trip(
    fParam: UpdateForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        trip = session.query(Trip).filter(Trip.id == fParam.id).first()
        if trip is None:
            raise exceptions.InvalidIdentifier()

        updateTrip(session, trip, fParam, datetime.now(TMZ_PRIMARY))
        haveUpdates = session.is_modified(trip)
        if haveUpdates:
            session.commit()
            session.refresh(trip)

        tripData = jsonable_encoder(trip)
        if haveUpdates:
            logEvent(request_info, tripData)
        return tripData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.get(
    URL_TRIP,
    tags=["Trip"],
    response_model=List[TripSchema],
    description="""
    Fetch persisted trips.
    Supports filtering, sorting, and pagination.
    """,
)
async def fetch_trip(qParam: QueryParams = Depends()):
    try:
        session = sessionMaker()
        return searchTrip(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
