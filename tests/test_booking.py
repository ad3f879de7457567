from datetime import date, timedelta
from decimal import Decimal

import pytest

from app.api import booking as bookingAPI
from app.api.booking import (
    cancelItinerary,
    confirmItinerary,
    createItinerary,
    fetchItinerary,
    itineraryData,
)
from app.src import exceptions
from app.src.db import Booking, LoyaltyAccount, Trip
from app.src.enums import BookingStatus, Leg, LoyaltyTier, PaymentMethod
from app.src.inventory import expireHolds, takenSeats
from app.src.projection import projectedID
from tests.helpers import bookingForm, local

NOW = local(2025, 6, 9, 10)
OUTBOUND_DATE = date(2025, 6, 10)
RETURN_DATE = date(2025, 6, 12)


@pytest.fixture
def outbound(schedule):
    return projectedID(schedule.id, OUTBOUND_DATE)


@pytest.fixture
def inbound(returnSchedule):
    return projectedID(returnSchedule.id, RETURN_DATE)


def liveCount(session, tripID):
    return (
        session.query(Booking)
        .filter(Booking.trip_id == tripID)
        .filter(Booking.booking_status != BookingStatus.CANCELLED)
        .count()
    )


def assertSeatsConserved(session, trip):
    session.refresh(trip)
    assert trip.available_seats + liveCount(session, trip.id) == trip.total_seats


def test_card_booking_materializes_and_confirms(session, outbound):
    form = bookingForm(outbound, [13, 12], customerID="customer-001")

    reference, bookings = createItinerary(session, form, NOW)

    trip = session.query(Trip).one()
    assert len(bookings) == 2
    assert {booking.booking_reference for booking in bookings} == {reference}
    assert [booking.seat_number for booking in bookings] == [13, 12]
    for booking in bookings:
        assert booking.trip_id == trip.id
        assert booking.leg == Leg.OUTBOUND
        assert booking.booking_status == BookingStatus.CONFIRMED
        assert booking.reservation_expires_at is None
        assert booking.amount_paid == Decimal("250.00")
        assert booking.balance == Decimal("0")
        assert booking.trip_snapshot["trip_id"] == trip.id
        assert booking.trip_snapshot["is_projected"] is True
    assert takenSeats(session, trip.id, NOW) == {12, 13}
    assertSeatsConserved(session, trip)
    assert trip.available_seats == 58

    account = session.query(LoyaltyAccount).one()
    assert account.total_points == 5000
    assert account.tier == LoyaltyTier.GOLD


def test_second_booking_of_a_seat_conflicts(session, outbound):
    createItinerary(session, bookingForm(outbound, [12]), NOW)

    with pytest.raises(exceptions.SeatConflictError) as error:
        createItinerary(session, bookingForm(outbound, [12]), NOW)
    assert error.value.detail["seats"] == [12]

    trip = session.query(Trip).one()
    assert 12 in takenSeats(session, trip.id, NOW)
    assertSeatsConserved(session, trip)


def test_racing_booking_of_a_seat_conflicts(session, outbound, monkeypatch):
    createItinerary(session, bookingForm(outbound, [12]), NOW)
    # The second request validated before the first one committed
    monkeypatch.setattr(bookingAPI, "takenSeats", lambda *args: set())

    with pytest.raises(exceptions.SeatConflictError):
        createItinerary(session, bookingForm(outbound, [12]), NOW)

    trip = session.query(Trip).one()
    assert session.query(Booking).count() == 1
    assert trip.available_seats == 59
    assertSeatsConserved(session, trip)


def test_last_seats_cannot_be_oversold(session, makeTrip):
    trip = makeTrip(local(2025, 6, 10, 9), seats=2)
    createItinerary(session, bookingForm(str(trip.id), [1]), NOW)

    with pytest.raises(exceptions.InsufficientSeats):
        createItinerary(session, bookingForm(str(trip.id), [1, 2]), NOW)
    assertSeatsConserved(session, trip)
    assert trip.available_seats == 1


def test_reservation_holds_the_seat_until_it_expires(session, outbound):
    reference, bookings = createItinerary(
        session, bookingForm(outbound, [12], PaymentMethod.ONLINE_CHECKOUT), NOW
    )
    booking = bookings[0]
    trip = session.query(Trip).one()

    assert booking.booking_status == BookingStatus.RESERVED
    assert booking.reservation_expires_at == NOW + timedelta(minutes=15)
    assert booking.amount_paid == Decimal("0")
    assert booking.balance == Decimal("250.00")
    assert 12 in takenSeats(session, trip.id, NOW + timedelta(minutes=15))
    assert 12 not in takenSeats(session, trip.id, NOW + timedelta(minutes=16))


def test_late_confirmation_is_rejected_and_frees_the_seat(session, outbound):
    reference, _ = createItinerary(
        session, bookingForm(outbound, [12], PaymentMethod.ONLINE_CHECKOUT), NOW
    )

    with pytest.raises(exceptions.ReservationExpiredError):
        confirmItinerary(session, reference, NOW + timedelta(minutes=20))

    booking = session.query(Booking).one()
    trip = session.query(Trip).one()
    session.refresh(booking)
    assert booking.booking_status == BookingStatus.CANCELLED
    assert booking.cancelled_on is not None
    assertSeatsConserved(session, trip)
    assert trip.available_seats == 60

    # The seat can be sold again
    createItinerary(session, bookingForm(outbound, [12]), NOW + timedelta(minutes=21))


def test_confirmation_within_the_hold(session, outbound):
    reference, _ = createItinerary(
        session,
        bookingForm(outbound, [12, 13], PaymentMethod.ONLINE_CHECKOUT, "customer-002"),
        NOW,
    )
    assert session.query(LoyaltyAccount).count() == 0

    bookings = confirmItinerary(session, reference, NOW + timedelta(minutes=10))

    for booking in bookings:
        assert booking.booking_status == BookingStatus.CONFIRMED
        assert booking.amount_paid == Decimal("250.00")
        assert booking.balance == Decimal("0")
        assert booking.reservation_expires_at is None
        assert booking.confirmed_on is not None
    assert session.query(LoyaltyAccount).one().total_points == 5000

    # Confirming again changes nothing
    again = confirmItinerary(session, reference, NOW + timedelta(hours=1))
    assert [b.booking_status for b in again] == [BookingStatus.CONFIRMED] * 2
    assert session.query(LoyaltyAccount).one().total_points == 5000


def test_cash_hold_ends_before_departure(session, outbound):
    threeHoursBefore = local(2025, 6, 10, 3)
    _, bookings = createItinerary(
        session, bookingForm(outbound, [1], PaymentMethod.CASH), threeHoursBefore
    )
    assert bookings[0].reservation_expires_at == local(2025, 6, 10, 4)

    with pytest.raises(exceptions.ValidationError):
        createItinerary(
            session, bookingForm(outbound, [2], PaymentMethod.CASH), local(2025, 6, 10, 4, 30)
        )


def test_return_itinerary_shares_one_reference(session, outbound, inbound):
    form = bookingForm(outbound, [12, 13], inbound=inbound, inboundSeats=[20, 21])

    reference, bookings = createItinerary(session, form, NOW)

    assert len(bookings) == 4
    assert {booking.booking_reference for booking in bookings} == {reference}
    assert [booking.leg for booking in bookings] == [Leg.OUTBOUND] * 2 + [Leg.RETURN] * 2
    itinerary = itineraryData(bookings)
    assert itinerary["outbound_total"] == Decimal("500.00")
    assert itinerary["inbound_total"] == Decimal("460.00")
    assert itinerary["grand_total"] == Decimal("960.00")
    assert itinerary["booking_status"] == BookingStatus.CONFIRMED


def test_failed_return_leg_keeps_nothing(session, outbound, inbound, monkeypatch):
    createItinerary(session, bookingForm(inbound, [5]), NOW)
    monkeypatch.setattr(bookingAPI, "takenSeats", lambda *args: set())

    form = bookingForm(outbound, [12], inbound=inbound, inboundSeats=[5])
    with pytest.raises(exceptions.PartialBookingFailure) as error:
        createItinerary(session, form, NOW)

    assert error.value.detail["cause"] == "SeatConflictError"
    assert session.query(Booking).count() == 1
    for trip in session.query(Trip).all():
        assertSeatsConserved(session, trip)


def test_return_must_leave_after_outbound_arrives(session, outbound, returnSchedule):
    sameMorning = projectedID(returnSchedule.id, date(2025, 6, 9))

    with pytest.raises(exceptions.ValidationError):
        createItinerary(
            session,
            bookingForm(outbound, [1], inbound=sameMorning, inboundSeats=[1]),
            NOW,
        )
    assert session.query(Booking).count() == 0


def test_departed_trips_are_not_bookable(session, makeTrip):
    trip = makeTrip(local(2025, 6, 9, 8))

    with pytest.raises(exceptions.InactiveResource):
        createItinerary(session, bookingForm(str(trip.id), [1]), NOW)


def test_passenger_details_match_the_count(session, outbound):
    form = bookingForm(outbound, [1, 2])
    form.passengers = form.passengers[:1]

    with pytest.raises(exceptions.ValidationError):
        createItinerary(session, form, NOW)


def test_cancellation_frees_every_seat(session, outbound, inbound):
    reference, _ = createItinerary(
        session,
        bookingForm(outbound, [12], inbound=inbound, inboundSeats=[20]),
        NOW,
    )

    bookings = cancelItinerary(session, reference, NOW + timedelta(hours=1))

    assert {booking.booking_status for booking in bookings} == {BookingStatus.CANCELLED}
    for trip in session.query(Trip).all():
        session.refresh(trip)
        assert trip.available_seats == trip.total_seats
    with pytest.raises(exceptions.InvalidStateTransition):
        cancelItinerary(session, reference, NOW + timedelta(hours=2))
    with pytest.raises(exceptions.InvalidIdentifier):
        cancelItinerary(session, "BK0000000000XX", NOW)


def test_sweep_releases_only_expired_holds(session, outbound):
    createItinerary(session, bookingForm(outbound, [1]), NOW)
    createItinerary(
        session, bookingForm(outbound, [2, 3], PaymentMethod.ONLINE_CHECKOUT), NOW
    )
    createItinerary(
        session,
        bookingForm(outbound, [4], PaymentMethod.CASH),
        NOW,
    )

    released = expireHolds(session, NOW + timedelta(hours=1))
    session.commit()

    assert sorted(booking.seat_number for booking in released) == [2, 3]
    trip = session.query(Trip).one()
    assert takenSeats(session, trip.id, NOW + timedelta(hours=1)) == {1, 4}
    assertSeatsConserved(session, trip)
    assert expireHolds(session, NOW + timedelta(hours=1)) == []


def test_fetch_reports_lapsed_holds_as_cancelled(session, outbound):
    reference, _ = createItinerary(
        session, bookingForm(outbound, [7], PaymentMethod.ONLINE_CHECKOUT), NOW
    )

    bookings = fetchItinerary(session, reference, NOW + timedelta(minutes=30))
    session.refresh(bookings[0])

    assert bookings[0].booking_status == BookingStatus.CANCELLED
    assert itineraryData(bookings)["booking_status"] == BookingStatus.CANCELLED


def test_cash_return_itinerary_shares_the_earliest_deadline(session, outbound, inbound):
    reference, bookings = createItinerary(
        session,
        bookingForm(
            outbound, [12], PaymentMethod.CASH, inbound=inbound, inboundSeats=[20]
        ),
        NOW,
    )

    # The outbound cutoff, two hours before its 06:00 departure
    assert {booking.reservation_expires_at for booking in bookings} == {
        local(2025, 6, 10, 4)
    }

    with pytest.raises(exceptions.ReservationExpiredError):
        confirmItinerary(session, reference, local(2025, 6, 10, 5))

    bookings = fetchItinerary(session, reference, local(2025, 6, 10, 5))
    for booking in bookings:
        session.refresh(booking)
        assert booking.booking_status == BookingStatus.CANCELLED
    assert itineraryData(bookings)["booking_status"] == BookingStatus.CANCELLED
    for trip in session.query(Trip).all():
        assertSeatsConserved(session, trip)
        assert trip.available_seats == trip.total_seats


def test_lapsed_leg_releases_the_whole_itinerary(session, outbound, inbound):
    reference, bookings = createItinerary(
        session,
        bookingForm(
            outbound,
            [12],
            PaymentMethod.ONLINE_CHECKOUT,
            inbound=inbound,
            inboundSeats=[20],
        ),
        NOW,
    )
    outboundTripID = bookings[0].trip_id
    # A return hold that outlives the outbound one
    session.query(Booking).filter(Booking.leg == Leg.RETURN).update(
        {Booking.reservation_expires_at: NOW + timedelta(days=1)},
        synchronize_session=False,
    )
    session.commit()

    released = expireHolds(session, NOW + timedelta(hours=1), [outboundTripID])
    session.commit()

    assert sorted(booking.leg for booking in released) == [Leg.OUTBOUND, Leg.RETURN]
    with pytest.raises(exceptions.InvalidStateTransition):
        confirmItinerary(session, reference, NOW + timedelta(hours=1))
    for trip in session.query(Trip).all():
        assertSeatsConserved(session, trip)
