from datetime import date, datetime, time
from decimal import Decimal
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm.session import Session
from pydantic import BaseModel, Field

from app.src.db import Schedule, sessionMaker
from app.src import exceptions
from app.src.enums import Day, FrequencyType, OrderIn
from app.src.functions import enumStr
from app.src.projection import fires
from app.src.urls import URL_SCHEDULE

route_operator = APIRouter()


## Output Schema
class ScheduleSchema(BaseModel):
    id: int
    name: str
    route_id: int
    bus_id: Optional[int]
    departure_time: time
    duration_hours: Decimal
    fare: Decimal
    frequency_type: int
    frequency: Optional[List[int]]
    active: bool
    updated_on: Optional[datetime]
    created_on: datetime


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    name = 2
    departure_time = 3
    updated_on = 4
    created_on = 5


class QueryParams(BaseModel):
    name: str | None = Field(Query(default=None))
    route_id: int | None = Field(Query(default=None))
    bus_id: int | None = Field(Query(default=None))
    frequency_type: FrequencyType | None = Field(
        Query(default=None, description=enumStr(FrequencyType))
    )
    active: bool | None = Field(Query(default=None))
    fires_on: date | None = Field(
        Query(default=None, description="Only schedules producing a trip on this date")
    )
    # id based
    id: int | None = Field(Query(default=None))
    id_list: List[int] | None = Field(Query(default=None))
    # created_on based
    created_on_ge: datetime | None = Field(Query(default=None))
    created_on_le: datetime | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
def searchSchedule(session: Session, qParam: QueryParams) -> List[Schedule]:
    query = session.query(Schedule)

    # Filters
    if qParam.name is not None:
        query = query.filter(Schedule.name.ilike(f"%{qParam.name}%"))
    if qParam.route_id is not None:
        query = query.filter(Schedule.route_id == qParam.route_id)
    if qParam.bus_id is not None:
        query = query.filter(Schedule.bus_id == qParam.bus_id)
    if qParam.frequency_type is not None:
        query = query.filter(Schedule.frequency_type == qParam.frequency_type)
    if qParam.active is not None:
        query = query.filter(Schedule.active.is_(qParam.active))
    # id based
    if qParam.id is not None:
        query = query.filter(Schedule.id == qParam.id)
    if qParam.id_list is not None:
        query = query.filter(Schedule.id.in_(qParam.id_list))
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(Schedule.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        query = query.filter(Schedule.created_on <= qParam.created_on_le)

    # Ordering
    orderingAttr = getattr(Schedule, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttr.asc())
    else:
        query = query.order_by(orderingAttr.desc())

    # The recurrence rule is evaluated in Python, so paginate afterwards
    if qParam.fires_on is not None:
        schedules = [item for item in query.all() if fires(item, qParam.fires_on)]
        return schedules[qParam.offset : qParam.offset + qParam.limit]

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Operator]
@route_operator.get(
    URL_SCHEDULE,
    tags=["Schedule"],
    response_model=List[ScheduleSchema],
    description=f"""
    Fetch the recurring service definitions that trips are projected from.
    Schedules are read-only here.
    Frequency days are {enumStr(Day)}.
    Supports filtering, sorting, and pagination.
    """,
)
async def fetch_schedule(qParam: QueryParams = Depends()):
    try:
        session = sessionMaker()
        return searchSchedule(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
