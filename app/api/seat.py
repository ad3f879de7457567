from datetime import datetime
from decimal import Decimal
from typing import List
from fastapi import APIRouter, Depends, Query, Body
from pydantic import BaseModel, Field

from app.src.db import Booking, sessionMaker
from app.src import exceptions, validators, seat_map, fare
from app.src.inventory import expireHolds, takenSeats
from app.src.schemas import ProjectedTrip, TripView
from app.src.constants import MAX_PASSENGER_COUNT, TMZ_PRIMARY
from app.src.functions import fuseExceptionResponses
from app.src.urls import URL_TRIP_SEAT
from app.api.trip import resolveTrip, tripView

route_public = APIRouter()


## Output Schema
class SeatSchema(BaseModel):
    number: int
    available: bool


class SeatRowSchema(BaseModel):
    row: int
    left: List[SeatSchema]
    right: List[SeatSchema]


class SeatMapSchema(BaseModel):
    trip: TripView
    taken: List[int]
    rows: List[SeatRowSchema]


class SeatSelectionSchema(BaseModel):
    trip: str
    seats: List[int]
    leg_total: Decimal


## Input Forms
class SelectionForm(BaseModel):
    trip: str = Field(Body(max_length=64))
    passenger_count: int = Field(Body(le=MAX_PASSENGER_COUNT))
    seats: List[int] = Field(Body())


## Query Parameters
class QueryParams(BaseModel):
    trip: str = Field(Query(max_length=64))


## Function
def seatState(session, reference: str, now: datetime):
    """
    Resolve a trip reference to its view and the seats currently held.
    Lapsed holds on a persisted trip are released on the way.
    """
    target = resolveTrip(session, reference)
    if isinstance(target, ProjectedTrip):
        return target, set()
    if expireHolds(session, now, [target.id]):
        session.commit()
        session.refresh(target)
    return tripView(session, target), takenSeats(session, target.id, now)


## API endpoints [Public]
@route_public.get(
    URL_TRIP_SEAT,
    tags=["Seat"],
    response_model=SeatMapSchema,
    responses=fuseExceptionResponses([exceptions.UnknownValue(Booking.trip_id)]),
    description="""
    Fetch the seat map of a persisted or projected trip.
    Seats are numbered front to back, four per row, two on each side of the aisle.
    A seat is taken while a confirmed booking or an unexpired reservation holds it.
    """,
)
async def fetch_seat_map(qParam: QueryParams = Depends()):
    try:
        session = sessionMaker()
        view, taken = seatState(session, qParam.trip, datetime.now(TMZ_PRIMARY))
        return {
            "trip": view,
            "taken": sorted(taken),
            "rows": seat_map.seatLayout(view.total_seats, taken),
        }
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_public.post(
    URL_TRIP_SEAT,
    tags=["Seat"],
    response_model=SeatSelectionSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.SeatCountMismatch(),
            exceptions.InsufficientSeats(),
            exceptions.SeatConflictError(),
            exceptions.InvalidSeatNumber(),
        ]
    ),
    description="""
    Check a seat selection before checkout, nothing is held.
    The number of seats must equal the passenger count fixed at search time.
    Returns the sorted selection and the price of the leg.
    """,
)
async def validate_seat_selection(fParam: SelectionForm = Depends()):
    try:
        session = sessionMaker()
        validators.passengerCount(fParam.passenger_count)
        view, taken = seatState(session, fParam.trip, datetime.now(TMZ_PRIMARY))
        seats = seat_map.validateSelection(
            view.total_seats,
            view.available_seats,
            fParam.passenger_count,
            fParam.seats,
            taken,
        )
        return {
            "trip": str(view.id),
            "seats": seats,
            "leg_total": fare.legTotal(view.fare, len(seats)),
        }
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
