from datetime import datetime
from decimal import Decimal
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple
from fastapi import APIRouter, Depends, Query, status, Body, Form
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field, EmailStr
from pydantic_extra_types.phone_numbers import PhoneNumber

from app.src.db import Booking, Trip, sessionMaker
from app.src import exceptions, validators, getters, reservation, seat_map, fare
from app.src.loggers import logEvent
from app.src.inventory import (
    expireHolds,
    releaseBookings,
    releaseItineraries,
    reserveSeats,
    takenSeats,
)
from app.src.enums import BookingStatus, Leg, OrderIn, PaymentMethod
from app.src.constants import MAX_PASSENGER_COUNT, TMZ_PRIMARY
from app.src.schemas import ProjectedTrip
from app.src.functions import enumStr, fuseExceptionResponses
from app.src.urls import (
    URL_BOOKING,
    URL_BOOKING_CONFIRM,
    URL_BOOKING_EXPIRE,
    URL_BOOKING_QUOTE,
)
from app.api.trip import materializeTrip, resolveTrip, tripView
from app.api.loyalty import earnPoints

route_public = APIRouter()
route_operator = APIRouter()


## Output Schema
class BookingSchema(BaseModel):
    id: int
    booking_reference: str
    trip_id: int
    leg: int
    customer_id: Optional[str]
    seat_number: int
    passenger_name: str
    passenger_email: Optional[str]
    passenger_phone: Optional[str]
    passenger_id_number: Optional[str]
    fare: Decimal
    amount_paid: Decimal
    balance: Decimal
    payment_method: int
    booking_status: int
    reservation_expires_at: Optional[datetime]
    trip_snapshot: Dict[str, Any]
    confirmed_on: Optional[datetime]
    cancelled_on: Optional[datetime]
    updated_on: Optional[datetime]
    created_on: datetime


class ItinerarySchema(BaseModel):
    booking_reference: str
    booking_status: int
    outbound_total: Decimal
    inbound_total: Optional[Decimal]
    grand_total: Decimal
    balance: Decimal
    bookings: List[BookingSchema]


class QuoteSchema(BaseModel):
    seat_count: int
    outbound_total: Decimal
    inbound_total: Optional[Decimal]
    grand_total: Decimal


class ExpirySchema(BaseModel):
    expired: int
    booking_id_list: List[int]


## Input Forms
class PassengerForm(BaseModel):
    name: str = Field(max_length=64)
    email: EmailStr | None = Field(default=None, description="Email in RFC 5322 format")
    phone: PhoneNumber | None = Field(
        default=None, description="Phone number in RFC3966 format"
    )
    id_number: str | None = Field(default=None, max_length=32)


class LegForm(BaseModel):
    trip: str = Field(max_length=64)
    seats: List[int]


class CreateForm(BaseModel):
    customer_id: str | None = Field(Body(default=None, max_length=64))
    payment_method: PaymentMethod = Field(Body(description=enumStr(PaymentMethod)))
    passenger_count: int = Field(Body(le=MAX_PASSENGER_COUNT))
    passengers: List[PassengerForm] = Field(Body())
    outbound: LegForm = Field(Body())
    inbound: LegForm | None = Field(Body(default=None))


class QuoteForm(BaseModel):
    outbound_trip: str = Field(Body(max_length=64))
    inbound_trip: str | None = Field(Body(default=None, max_length=64))
    passenger_count: int = Field(Body(le=MAX_PASSENGER_COUNT))


class ReferenceForm(BaseModel):
    booking_reference: str = Field(Form(max_length=16))


## Query Parameters
class ReferenceParams(BaseModel):
    booking_reference: str = Field(Query(max_length=16))


class OrderBy(IntEnum):
    id = 1
    reservation_expires_at = 2
    updated_on = 3
    created_on = 4


class QueryParams(BaseModel):
    booking_reference: str | None = Field(Query(default=None))
    trip_id: int | None = Field(Query(default=None))
    customer_id: str | None = Field(Query(default=None))
    passenger_name: str | None = Field(Query(default=None))
    leg: Leg | None = Field(Query(default=None, description=enumStr(Leg)))
    payment_method: PaymentMethod | None = Field(
        Query(default=None, description=enumStr(PaymentMethod))
    )
    booking_status: BookingStatus | None = Field(
        Query(default=None, description=enumStr(BookingStatus))
    )
    # id based
    id: int | None = Field(Query(default=None))
    id_list: List[int] | None = Field(Query(default=None))
    # reservation_expires_at based
    reservation_expires_at_ge: datetime | None = Field(Query(default=None))
    reservation_expires_at_le: datetime | None = Field(Query(default=None))
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
def prepareLeg(
    session: Session, legForm: LegForm, passengerCount: int, now: datetime
) -> Tuple[Trip, dict]:
    """
    Resolve the trip of a leg, materializing a projected trip.

    The selection is checked against the projected capacity first, so a
    request that cannot succeed never creates a trip row.

    Returns:
        tuple: (persisted trip, snapshot of the trip as booked)
    """
    target = resolveTrip(session, legForm.trip)
    validators.bookableTrip(target, now)
    if isinstance(target, ProjectedTrip):
        seat_map.validateSelection(
            target.total_seats, target.available_seats, passengerCount, legForm.seats
        )
        snapshot = jsonable_encoder(target)
        trip = materializeTrip(session, target)
    else:
        trip = target
        snapshot = jsonable_encoder(tripView(session, trip))
    snapshot["trip_id"] = trip.id
    return trip, snapshot


def bookLeg(
    session: Session,
    trip: Trip,
    leg: Leg,
    seats: List[int],
    snapshot: dict,
    fParam: CreateForm,
    reference: str,
    expiresAt: Optional[datetime],
    now: datetime,
) -> List[Booking]:
    """Hold the seats of one leg. Flushes, does not commit."""
    reserveSeats(session, trip.id, len(seats))
    bookingStatus = reservation.initialStatus(fParam.payment_method)
    seatFare = fare.toAmount(trip.fare)
    settled = bookingStatus == BookingStatus.CONFIRMED

    bookings = [
        Booking(
            booking_reference=reference,
            trip_id=trip.id,
            leg=leg,
            customer_id=fParam.customer_id,
            seat_number=seat,
            passenger_name=passenger.name,
            passenger_email=passenger.email,
            passenger_phone=passenger.phone,
            passenger_id_number=passenger.id_number,
            fare=seatFare,
            amount_paid=seatFare if settled else Decimal(0),
            balance=Decimal(0) if settled else seatFare,
            payment_method=fParam.payment_method,
            booking_status=bookingStatus,
            reservation_expires_at=expiresAt,
            trip_snapshot=snapshot,
            confirmed_on=now if settled else None,
        )
        for seat, passenger in zip(seats, fParam.passengers)
    ]
    session.add_all(bookings)
    try:
        session.flush()
    except IntegrityError:
        raise exceptions.SeatConflictError(seats)
    return bookings


def createItinerary(
    session: Session, fParam: CreateForm, now: datetime
) -> Tuple[str, List[Booking]]:
    """
    Book every seat of every leg under one shared reference.

    Trips are resolved and materialized first, stale holds on them are
    released, and both legs are validated before anything is held. The
    holds of all legs are then written in one transaction and share the
    earliest deadline of the legs, so they lapse together: when the return
    leg fails the outbound rows are rolled back with it and
    `PartialBookingFailure` names the cause.

    Returns:
        tuple: (booking reference, bookings)
    """
    count = fParam.passenger_count
    validators.passengerCount(count)
    if len(fParam.passengers) != count:
        raise exceptions.ValidationError("Passenger details are required for every passenger")

    outboundTrip, outboundSnapshot = prepareLeg(session, fParam.outbound, count, now)
    legs = [(Leg.OUTBOUND, outboundTrip, outboundSnapshot, fParam.outbound.seats)]
    if fParam.inbound is not None:
        inboundTrip, inboundSnapshot = prepareLeg(session, fParam.inbound, count, now)
        if inboundTrip.departure_at <= outboundTrip.arrival_at:
            raise exceptions.ValidationError(
                "The return trip must depart after the outbound trip arrives"
            )
        legs.append((Leg.RETURN, inboundTrip, inboundSnapshot, fParam.inbound.seats))

    expireHolds(session, now, [trip.id for _, trip, _, _ in legs])
    session.commit()
    deadlines = []
    for _, trip, _, seats in legs:
        session.refresh(trip)
        seat_map.validateSelection(
            trip.total_seats,
            trip.available_seats,
            count,
            seats,
            takenSeats(session, trip.id, now),
        )
        deadlines.append(
            reservation.holdExpiry(fParam.payment_method, now, trip.departure_at)
        )
    expiresAt = None
    if reservation.isDeferred(fParam.payment_method):
        expiresAt = min(deadlines)

    reference = reservation.bookingReference()
    bookings = []
    try:
        for leg, trip, snapshot, seats in legs:
            try:
                bookings += bookLeg(
                    session,
                    trip,
                    leg,
                    seats,
                    snapshot,
                    fParam,
                    reference,
                    expiresAt,
                    now,
                )
            except exceptions.APIException as e:
                if leg == Leg.RETURN:
                    raise exceptions.PartialBookingFailure(e)
                raise
        if fParam.customer_id and bookings[0].booking_status == BookingStatus.CONFIRMED:
            earnPoints(
                session,
                fParam.customer_id,
                sum(booking.fare for booking in bookings),
                bookings[0].id,
                f"Booking {reference}",
            )
        session.commit()
    except Exception:
        session.rollback()
        raise
    return reference, bookings


def fetchBookings(session: Session, reference: str) -> List[Booking]:
    bookings = (
        session.query(Booking)
        .filter(Booking.booking_reference == reference)
        .order_by(Booking.leg, Booking.seat_number)
        .all()
    )
    if not bookings:
        raise exceptions.InvalidIdentifier()
    return bookings


def fetchItinerary(session: Session, reference: str, now: datetime) -> List[Booking]:
    """Load an itinerary, cancelling it when a hold expired unnoticed."""
    bookings = fetchBookings(session, reference)
    expired = [booking for booking in bookings if reservation.isExpired(booking, now)]
    if expired:
        releaseItineraries(session, expired, now)
        session.commit()
    return bookings


def confirmItinerary(session: Session, reference: str, now: datetime) -> List[Booking]:
    """
    Record the payment of a reserved itinerary.

    When any hold of the itinerary already expired, every remaining hold
    is cancelled and the confirmation is refused. The confirmation itself only applies to rows that are still
    reserved and unexpired, so it cannot race the expiry sweep. Confirming
    an already confirmed itinerary changes nothing.

    Raises:
        exceptions.ReservationExpiredError: A hold of the itinerary ended.
        exceptions.InvalidStateTransition: Nothing left to confirm.
    """
    bookings = fetchBookings(session, reference)
    reserved = [b for b in bookings if b.booking_status == BookingStatus.RESERVED]
    if not reserved:
        if any(b.booking_status == BookingStatus.CONFIRMED for b in bookings):
            return bookings
        raise exceptions.InvalidStateTransition(Booking.booking_status)

    expired = [booking for booking in reserved if reservation.isExpired(booking, now)]
    if expired:
        releaseItineraries(session, expired, now)
        session.commit()
        raise exceptions.ReservationExpiredError()

    updated = (
        session.query(Booking)
        .filter(
            Booking.booking_reference == reference,
            Booking.booking_status == BookingStatus.RESERVED,
            Booking.reservation_expires_at >= now,
        )
        .update(
            {
                Booking.booking_status: BookingStatus.CONFIRMED,
                Booking.amount_paid: Booking.fare,
                Booking.balance: 0,
                Booking.confirmed_on: now,
                Booking.reservation_expires_at: None,
            },
            synchronize_session=False,
        )
    )
    if updated != len(reserved):
        session.rollback()
        raise exceptions.ReservationExpiredError()

    customerID = reserved[0].customer_id
    if customerID:
        earnPoints(
            session,
            customerID,
            sum(booking.fare for booking in reserved),
            reserved[0].id,
            f"Booking {reference}",
        )
    session.commit()
    for booking in bookings:
        session.refresh(booking)
    return bookings


def cancelItinerary(session: Session, reference: str, now: datetime) -> List[Booking]:
    """
    Cancel every live booking of an itinerary and free the seats.

    Raises:
        exceptions.InvalidStateTransition: Nothing left to cancel, or a
            trip of the itinerary no longer takes changes.
    """
    bookings = fetchBookings(session, reference)
    live = [b for b in bookings if b.booking_status != BookingStatus.CANCELLED]
    if not live:
        raise exceptions.InvalidStateTransition(Booking.booking_status)
    trips = session.query(Trip).filter(Trip.id.in_([b.trip_id for b in live])).all()
    if any(trip.status not in validators.BOOKABLE_TRIP_STATUS for trip in trips):
        raise exceptions.InvalidStateTransition(Booking.booking_status)

    releaseBookings(session, live, now)
    session.commit()
    for booking in bookings:
        session.refresh(booking)
    return bookings


def itineraryData(bookings: List[Booking]) -> dict:
    live = [b for b in bookings if b.booking_status != BookingStatus.CANCELLED]
    outbound = [b for b in live if b.leg == Leg.OUTBOUND]
    inbound = [b for b in live if b.leg == Leg.RETURN]
    outboundTotal = fare.legTotal(outbound[0].fare, len(outbound)) if outbound else Decimal(0)
    inboundTotal = fare.legTotal(inbound[0].fare, len(inbound)) if inbound else None
    if any(b.leg == Leg.RETURN for b in bookings) and inboundTotal is None:
        inboundTotal = Decimal(0)

    if not live:
        bookingStatus = BookingStatus.CANCELLED
    elif any(b.booking_status == BookingStatus.RESERVED for b in live):
        bookingStatus = BookingStatus.RESERVED
    else:
        bookingStatus = BookingStatus.CONFIRMED
    return {
        "booking_reference": bookings[0].booking_reference,
        "booking_status": bookingStatus,
        "outbound_total": outboundTotal,
        "inbound_total": inboundTotal,
        "grand_total": fare.grandTotal(outboundTotal, inboundTotal),
        "balance": fare.toAmount(sum((b.balance for b in live), Decimal(0))),
        "bookings": jsonable_encoder(bookings),
    }


def searchBooking(session: Session, qParam: QueryParams) -> List[Booking]:
    query = session.query(Booking)

    # Filters
    if qParam.booking_reference is not None:
        query = query.filter(Booking.booking_reference == qParam.booking_reference)
    if qParam.trip_id is not None:
        query = query.filter(Booking.trip_id == qParam.trip_id)
    if qParam.customer_id is not None:
        query = query.filter(Booking.customer_id == qParam.customer_id)
    if qParam.passenger_name is not None:
        query = query.filter(Booking.passenger_name.ilike(f"%{qParam.passenger_name}%"))
    if qParam.leg is not None:
        query = query.filter(Booking.leg == qParam.leg)
    if qParam.payment_method is not None:
        query = query.filter(Booking.payment_method == qParam.payment_method)
    if qParam.booking_status is not None:
        query = query.filter(Booking.booking_status == qParam.booking_status)
    # id based
    if qParam.id is not None:
        query = query.filter(Booking.id == qParam.id)
    if qParam.id_list is not None:
        query = query.filter(Booking.id.in_(qParam.id_list))
    # reservation_expires_at based
    if qParam.reservation_expires_at_ge is not None:
        query = query.filter(
            Booking.reservation_expires_at >= qParam.reservation_expires_at_ge
        )
    if qParam.reservation_expires_at_le is not None:
        query = query.filter(
            Booking.reservation_expires_at <= qParam.reservation_expires_at_le
        )
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(Booking.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        query = query.filter(Booking.created_on <= qParam.created_on_le)

    # Ordering
    orderingAttr = getattr(Booking, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttr.asc())
    else:
        query = query.order_by(orderingAttr.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Public]
@route_public.post(
    URL_BOOKING_QUOTE,
    tags=["Booking"],
    response_model=QuoteSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.ValidationError("At least one passenger is required"),
            exceptions.UnknownValue(Booking.trip_id),
        ]
    ),
    description="""
    Price an itinerary before checkout.
    Each leg costs the trip fare times the passenger count, the grand total adds the return leg when present.
    """,
)
async def quote_booking(fParam: QuoteForm = Depends()):
    try:
        session = sessionMaker()
        validators.passengerCount(fParam.passenger_count)
        outbound = resolveTrip(session, fParam.outbound_trip)
        inboundFare = None
        if fParam.inbound_trip is not None:
            inboundFare = resolveTrip(session, fParam.inbound_trip).fare
        return fare.quote(outbound.fare, fParam.passenger_count, inboundFare)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_public.post(
    URL_BOOKING,
    tags=["Booking"],
    response_model=ItinerarySchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.ValidationError("Passenger details are required for every passenger"),
            exceptions.InvalidSeatNumber(),
            exceptions.UnknownValue(Booking.trip_id),
            exceptions.SeatCountMismatch(),
            exceptions.InsufficientSeats(),
            exceptions.SeatConflictError(),
            exceptions.PartialBookingFailure(),
            exceptions.InactiveResource(Trip),
        ]
    ),
    description="""
    Book an itinerary: one booking per seat per leg, all sharing one booking reference.
    A projected trip is materialized into a persisted trip by its first booking.
    CARD and MOBILE_MONEY bookings are CONFIRMED and paid.
    ONLINE_CHECKOUT and CASH bookings are RESERVED with a balance until `reservation_expires_at`, and are cancelled if unpaid by then.
    A CASH hold ends at the latest two hours before departure.
    Either every booking of the itinerary is written or none is.
    Log the booking activity.
    """,
)
async def create_booking(
    fParam: CreateForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        reference, bookings = createItinerary(
            session, fParam, datetime.now(TMZ_PRIMARY)
        )
        for booking in bookings:
            session.refresh(booking)

        itinerary = itineraryData(bookings)
        logEvent(request_info, jsonable_encoder(
            {**itinerary, "customer_id": fParam.customer_id, "bookings": None}
        ))
        return itinerary
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_public.get(
    URL_BOOKING,
    tags=["Booking"],
    response_model=ItinerarySchema,
    responses=fuseExceptionResponses([exceptions.InvalidIdentifier()]),
    description="""
    Fetch an itinerary by booking reference.
    Reservations whose hold has ended are reported as cancelled.
    """,
)
async def fetch_booking(qParam: ReferenceParams = Depends()):
    try:
        session = sessionMaker()
        bookings = fetchItinerary(
            session, qParam.booking_reference, datetime.now(TMZ_PRIMARY)
        )
        for booking in bookings:
            session.refresh(booking)
        return itineraryData(bookings)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_public.post(
    URL_BOOKING_CONFIRM,
    tags=["Booking"],
    response_model=ItinerarySchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidIdentifier(),
            exceptions.ReservationExpiredError(),
            exceptions.InvalidStateTransition(Booking.booking_status),
        ]
    ),
    description="""
    Record the payment of a RESERVED itinerary before its hold ends.
    A late confirmation cancels the expired reservations and fails with ReservationExpiredError.
    Log the confirmation activity.
    """,
)
async def confirm_booking(
    fParam: ReferenceForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        bookings = confirmItinerary(
            session, fParam.booking_reference, datetime.now(TMZ_PRIMARY)
        )
        itinerary = itineraryData(bookings)
        logEvent(request_info, jsonable_encoder({**itinerary, "bookings": None}))
        return itinerary
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_public.delete(
    URL_BOOKING,
    tags=["Booking"],
    response_model=ItinerarySchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(Booking.booking_status),
        ]
    ),
    description="""
    Cancel every live booking of an itinerary, reserved or confirmed, and free the seats.
    Bookings are kept as CANCELLED.
    Trips that already departed cannot be cancelled.
    Log the cancellation activity.
    """,
)
async def cancel_booking(
    fParam: ReferenceForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        bookings = cancelItinerary(
            session, fParam.booking_reference, datetime.now(TMZ_PRIMARY)
        )
        itinerary = itineraryData(bookings)
        logEvent(request_info, jsonable_encoder({**itinerary, "bookings": None}))
        return itinerary
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Operator]
@route_operator.post(
    URL_BOOKING_EXPIRE,
    tags=["Booking"],
    response_model=ExpirySchema,
    description="""
    Cancel every reservation whose hold has ended and free the seats.
    The cleaner runs the same sweep periodically.
    Log the sweep when it cancelled something.
    """,
)
async def expire_booking(request_info=Depends(getters.requestInfo)):
    try:
        session = sessionMaker()
        expired = expireHolds(session, datetime.now(TMZ_PRIMARY))
        session.commit()

        expiryData = {
            "expired": len(expired),
            "booking_id_list": [booking.id for booking in expired],
        }
        if expired:
            logEvent(request_info, expiryData)
        return expiryData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.get(
    URL_BOOKING,
    tags=["Booking"],
    response_model=List[BookingSchema],
    description="""
    Fetch bookings across itineraries.
    Supports filtering, sorting, and pagination.
    """,
)
async def fetch_bookings(qParam: QueryParams = Depends()):
    try:
        session = sessionMaker()
        return searchBooking(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
