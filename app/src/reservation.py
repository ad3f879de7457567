import secrets, string, time
from datetime import datetime, timedelta
from typing import Optional

from app.src import exceptions
from app.src.db import Booking
from app.src.enums import BookingStatus, PaymentMethod
from app.src.constants import (
    BOOKING_REFERENCE_PREFIX,
    CHECKOUT_HOLD_TIME,
    TERMINAL_HOLD_CUTOFF,
    TERMINAL_HOLD_TIME,
)

# Hold horizon (in seconds) of every deferred payment method.
# Methods missing here settle at booking time.
HOLD_TIME = {
    PaymentMethod.ONLINE_CHECKOUT: CHECKOUT_HOLD_TIME,
    PaymentMethod.CASH: TERMINAL_HOLD_TIME,
}

# How long before departure a hold must end
HOLD_CUTOFF = {
    PaymentMethod.ONLINE_CHECKOUT: 0,
    PaymentMethod.CASH: TERMINAL_HOLD_CUTOFF,
}


def isDeferred(paymentMethod: PaymentMethod) -> bool:
    return paymentMethod in HOLD_TIME


def initialStatus(paymentMethod: PaymentMethod) -> BookingStatus:
    if isDeferred(paymentMethod):
        return BookingStatus.RESERVED
    return BookingStatus.CONFIRMED


def holdExpiry(
    paymentMethod: PaymentMethod, now: datetime, departureAt: datetime
) -> Optional[datetime]:
    """
    Compute the reservation deadline of a new booking.

    The hold lasts the horizon of the payment method but never runs past
    the method's cutoff before departure.

    Returns:
        The deadline, or None for methods that settle immediately.

    Raises:
        exceptions.ValidationError: The departure is too close for the method.
    """
    if not isDeferred(paymentMethod):
        return None
    expiresAt = now + timedelta(seconds=HOLD_TIME[paymentMethod])
    cutoff = departureAt - timedelta(seconds=HOLD_CUTOFF[paymentMethod])
    expiresAt = min(expiresAt, cutoff)
    if expiresAt <= now:
        raise exceptions.ValidationError(
            "The departure is too close to reserve with this payment method"
        )
    return expiresAt


def isExpired(booking: Booking, now: datetime) -> bool:
    """A reserved booking expires once its deadline has passed."""
    return (
        booking.booking_status == BookingStatus.RESERVED
        and booking.reservation_expires_at is not None
        and now > booking.reservation_expires_at
    )


def bookingReference() -> str:
    """
    Generate an itinerary reference such as `BK48213377QX7D`.

    Eight digits of the millisecond clock followed by four random
    uppercase alphanumerics.
    """
    clock = str(int(time.time() * 1000))[-8:]
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(4))
    return f"{BOOKING_REFERENCE_PREFIX}{clock}{suffix}"
