from datetime import date, datetime, timedelta

from app.api.booking import createItinerary
from app.src.cleaner import removeExpiredReservations
from app.src.constants import TMZ_PRIMARY
from app.src.db import Booking, Trip
from app.src.enums import BookingStatus, PaymentMethod
from app.src.scheduler import materializeAhead
from tests.helpers import bookingForm, local


def test_cleaner_cancels_lapsed_reservations(session, makeTrip):
    now = datetime.now(TMZ_PRIMARY)
    trip = makeTrip(now + timedelta(days=2))
    createItinerary(session, bookingForm(str(trip.id), [4]), now)
    createItinerary(
        session,
        bookingForm(str(trip.id), [3], PaymentMethod.ONLINE_CHECKOUT),
        now - timedelta(hours=1),
    )

    assert removeExpiredReservations(session) == 1

    statuses = {
        booking.seat_number: booking.booking_status
        for booking in session.query(Booking).all()
    }
    assert statuses == {3: BookingStatus.CANCELLED, 4: BookingStatus.CONFIRMED}
    session.refresh(trip)
    assert trip.available_seats == 59
    assert removeExpiredReservations(session) == 0


def test_scheduler_materializes_the_coming_days(session, schedule, makeTrip):
    makeTrip(local(2025, 6, 12, 6), trip_number="TRP-MANUAL")

    created = materializeAhead(session, date(2025, 6, 10), 7)

    assert len(created) == 6
    assert session.query(Trip).count() == 7
    assert {trip.schedule_id for trip in created} == {schedule.id}
    assert materializeAhead(session, date(2025, 6, 10), 7) == []


def test_scheduler_skips_inactive_schedules(session, schedule):
    schedule.active = False
    session.commit()

    assert materializeAhead(session, date(2025, 6, 10), 3) == []
