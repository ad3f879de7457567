"""
Seat inventory of persisted trips.

Seat counts and seat ownership only change through conditional statements,
so concurrent requests can never oversell a trip or hand one seat to two
live bookings:

- `available_seats` is decremented with `WHERE available_seats >= n`.
- Booking status changes are guarded by their current status.
- The partial unique index on (trip_id, seat_number) rejects a second
  live booking of a seat.

None of these helpers commit, the caller owns the transaction.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Set
from sqlalchemy import or_
from sqlalchemy.orm.session import Session

from app.src import exceptions
from app.src.db import Booking, Trip
from app.src.enums import BookingStatus


def takenSeats(session: Session, tripID: int, now: datetime) -> Set[int]:
    """Seats of a trip held by a confirmed booking or an unexpired hold."""
    rows = (
        session.query(Booking.seat_number)
        .filter(Booking.trip_id == tripID)
        .filter(Booking.booking_status != BookingStatus.CANCELLED)
        .filter(
            or_(
                Booking.booking_status == BookingStatus.CONFIRMED,
                Booking.reservation_expires_at >= now,
            )
        )
        .all()
    )
    return {seat for (seat,) in rows}


def reserveSeats(session: Session, tripID: int, count: int) -> None:
    """
    Take `count` seats off a trip's availability.

    Raises:
        exceptions.InsufficientSeats: Fewer than `count` seats are left.
    """
    updated = (
        session.query(Trip)
        .filter(Trip.id == tripID, Trip.available_seats >= count)
        .update(
            {Trip.available_seats: Trip.available_seats - count},
            synchronize_session=False,
        )
    )
    if updated == 0:
        available = (
            session.query(Trip.available_seats).filter(Trip.id == tripID).scalar()
        )
        raise exceptions.InsufficientSeats(available or 0, count)


def releaseBookings(
    session: Session,
    bookings: Iterable[Booking],
    now: datetime,
    onlyReserved: bool = False,
) -> List[Booking]:
    """
    Cancel bookings and give their seats back to the trips.

    Each booking is cancelled by its own conditional update, a booking that
    was already cancelled (or confirmed in the meantime, with `onlyReserved`)
    is skipped and frees nothing.

    Args:
        session (Session): Active SQLAlchemy session.
        bookings (Iterable[Booking]): Candidate bookings.
        now (datetime): Cancellation time.
        onlyReserved (bool): Only cancel bookings that are still reserved.

    Returns:
        List[Booking]: The bookings actually cancelled by this call.
    """
    released = []
    for booking in bookings:
        query = session.query(Booking).filter(
            Booking.id == booking.id,
            Booking.booking_status != BookingStatus.CANCELLED,
        )
        if onlyReserved:
            query = query.filter(Booking.booking_status == BookingStatus.RESERVED)
        updated = query.update(
            {
                Booking.booking_status: BookingStatus.CANCELLED,
                Booking.cancelled_on: now,
            },
            synchronize_session=False,
        )
        if updated:
            session.query(Trip).filter(Trip.id == booking.trip_id).update(
                {Trip.available_seats: Trip.available_seats + 1},
                synchronize_session=False,
            )
            released.append(booking)
    for booking in released:
        session.expire(booking)
    return released


def releaseItineraries(
    session: Session, bookings: Iterable[Booking], now: datetime
) -> List[Booking]:
    """
    Cancel every reserved booking sharing a reference with `bookings`.

    The legs of an itinerary live and die together, so a lapsed hold on
    one leg also releases the holds of the other leg.
    """
    references = list({booking.booking_reference for booking in bookings})
    if not references:
        return []
    reserved = (
        session.query(Booking)
        .filter(Booking.booking_reference.in_(references))
        .filter(Booking.booking_status == BookingStatus.RESERVED)
        .order_by(Booking.id)
        .all()
    )
    return releaseBookings(session, reserved, now, onlyReserved=True)


def expireHolds(
    session: Session, now: datetime, tripIDs: Optional[Iterable[int]] = None
) -> List[Booking]:
    """
    Cancel the itineraries holding a reservation that has ended.

    With `tripIDs` only holds on those trips are looked for, the other legs
    of the affected itineraries are released all the same.
    """
    query = session.query(Booking).filter(
        Booking.booking_status == BookingStatus.RESERVED,
        Booking.reservation_expires_at < now,
    )
    if tripIDs is not None:
        query = query.filter(Booking.trip_id.in_(list(tripIDs)))
    return releaseItineraries(session, query.all(), now)
