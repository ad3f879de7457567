import re
from datetime import timedelta

import pytest

from app.src import exceptions, reservation
from app.src.db import Booking
from app.src.enums import BookingStatus, PaymentMethod
from tests.helpers import local

NOW = local(2025, 6, 9, 10)


@pytest.mark.parametrize("method", [PaymentMethod.CARD, PaymentMethod.MOBILE_MONEY])
def test_immediate_methods_confirm_without_hold(method):
    assert reservation.initialStatus(method) == BookingStatus.CONFIRMED
    assert reservation.holdExpiry(method, NOW, NOW + timedelta(hours=1)) is None


def test_online_checkout_holds_fifteen_minutes():
    expiresAt = reservation.holdExpiry(
        PaymentMethod.ONLINE_CHECKOUT, NOW, NOW + timedelta(days=2)
    )

    assert reservation.initialStatus(PaymentMethod.ONLINE_CHECKOUT) == BookingStatus.RESERVED
    assert expiresAt == NOW + timedelta(minutes=15)


def test_cash_hold_ends_before_departure():
    far = reservation.holdExpiry(PaymentMethod.CASH, NOW, NOW + timedelta(days=3))
    near = reservation.holdExpiry(PaymentMethod.CASH, NOW, NOW + timedelta(hours=5))

    assert far == NOW + timedelta(hours=24)
    assert near == NOW + timedelta(hours=3)


def test_cash_hold_too_close_to_departure():
    with pytest.raises(exceptions.ValidationError):
        reservation.holdExpiry(PaymentMethod.CASH, NOW, NOW + timedelta(hours=2))


def test_expiry_check():
    booking = Booking(
        booking_status=BookingStatus.RESERVED,
        reservation_expires_at=NOW,
    )

    assert not reservation.isExpired(booking, NOW)
    assert reservation.isExpired(booking, NOW + timedelta(seconds=1))
    booking.booking_status = BookingStatus.CONFIRMED
    assert not reservation.isExpired(booking, NOW + timedelta(days=1))


def test_booking_reference_format():
    reference = reservation.bookingReference()

    assert re.fullmatch(r"BK\d{8}[A-Z0-9]{4}", reference)
