from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional, Union
from pydantic import BaseModel


class RequestInfo(BaseModel):
    method: str
    path: str
    app_id: int


class HealthStatus(BaseModel):
    status: str
    version: str


class ErrorResponse(BaseModel):
    detail: str | dict


class TripBase(BaseModel):
    """Fields shared by every bookable trip, whatever its provenance."""

    route_id: int
    origin: str
    destination: str
    bus_id: Optional[int]
    bus_name: Optional[str]
    schedule_id: Optional[int]
    trip_number: str
    departure_at: datetime
    arrival_at: datetime
    fare: Decimal
    status: int
    total_seats: int
    available_seats: int


class ProjectedTrip(TripBase):
    """
    A trip implied by a schedule for one service date.

    The identifier is synthetic (`projected-<schedule_id>-<YYYY-MM-DD>`)
    and stable across queries. It becomes a `PersistedTrip` only through
    materialization.
    """

    id: str
    schedule_id: int
    service_date: date
    is_projected: Literal[True] = True


class PersistedTrip(TripBase):
    id: int
    is_projected: Literal[False] = False


TripView = Union[PersistedTrip, ProjectedTrip]
