from datetime import datetime

from app.src.constants import TMZ_LOCAL
from app.src.enums import PaymentMethod


def local(year, month, day, hour=0, minute=0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=TMZ_LOCAL)


def bookingForm(
    outbound: str,
    seats,
    paymentMethod=PaymentMethod.CARD,
    customerID=None,
    inbound: str = None,
    inboundSeats=None,
):
    from app.api.booking import CreateForm, LegForm, PassengerForm

    return CreateForm(
        customer_id=customerID,
        payment_method=paymentMethod,
        passenger_count=len(seats),
        passengers=[PassengerForm(name=f"Passenger {seat}") for seat in seats],
        outbound=LegForm(trip=outbound, seats=seats),
        inbound=None if inbound is None else LegForm(trip=inbound, seats=inboundSeats),
    )
