from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from app.src import exceptions
from app.src.constants import CURRENCY_QUANTUM


def toAmount(value) -> Decimal:
    """Convert a fare or amount to a cent-quantized Decimal."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CURRENCY_QUANTUM, rounding=ROUND_HALF_UP)


def legTotal(fare, seatCount: int) -> Decimal:
    """Price of one leg: per seat fare times the number of seats."""
    if seatCount < 0:
        raise exceptions.ValidationError("Seat count cannot be negative")
    return toAmount(toAmount(fare) * seatCount)


def grandTotal(outboundTotal: Decimal, inboundTotal: Optional[Decimal] = None) -> Decimal:
    """Itinerary total. A one way itinerary has no inbound leg."""
    inbound = toAmount(inboundTotal) if inboundTotal is not None else Decimal(0)
    return toAmount(toAmount(outboundTotal) + inbound)


def quote(outboundFare, seatCount: int, inboundFare=None) -> dict:
    outbound = legTotal(outboundFare, seatCount)
    inbound = legTotal(inboundFare, seatCount) if inboundFare is not None else None
    return {
        "seat_count": seatCount,
        "outbound_total": outbound,
        "inbound_total": inbound,
        "grand_total": grandTotal(outbound, inbound),
    }
