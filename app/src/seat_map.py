from math import ceil
from typing import Iterable, List

from app.src import exceptions
from app.src.constants import SEATS_LEFT_OF_AISLE, SEATS_PER_ROW


def validateSelection(
    capacity: int,
    available: int,
    passengerCount: int,
    seats: List[int],
    taken: Iterable[int] = (),
) -> List[int]:
    """
    Validate a seat selection for one trip.

    Checks run from the cheapest to re-prompt to the most specific:
    count, room on the trip, seat numbers, then seats already held.

    Args:
        capacity (int): Total seats of the trip.
        available (int): Seats not held by an active booking.
        passengerCount (int): Party size fixed at search time.
        seats (List[int]): Seat numbers chosen by the user.
        taken (Iterable[int]): Seats held by live bookings. Empty for a
            projected trip.

    Returns:
        List[int]: The selection, sorted.

    Raises:
        exceptions.SeatCountMismatch: Selection size differs from the party size.
        exceptions.InsufficientSeats: The trip cannot seat the party.
        exceptions.InvalidSeatNumber: Duplicate or out of range seat numbers.
        exceptions.SeatConflictError: Some chosen seats are already held.
    """
    if len(seats) != passengerCount:
        raise exceptions.SeatCountMismatch(passengerCount, len(seats))
    if available < passengerCount:
        raise exceptions.InsufficientSeats(available, passengerCount)
    outOfRange = [seat for seat in seats if seat < 1 or seat > capacity]
    if outOfRange:
        raise exceptions.InvalidSeatNumber(outOfRange)
    if len(set(seats)) != len(seats):
        duplicates = {seat for seat in seats if seats.count(seat) > 1}
        raise exceptions.InvalidSeatNumber(list(duplicates))
    conflicts = set(seats) & set(taken)
    if conflicts:
        raise exceptions.SeatConflictError(list(conflicts))
    return sorted(seats)


def seatLayout(capacity: int, taken: Iterable[int] = ()) -> List[dict]:
    """
    Lay out seats in rows of four, front to back, two each side of the aisle.

    Example for a 6 seat coach with seat 3 taken:
        [
            {"row": 1, "left": [1, 2], "right": [3, 4]},
            {"row": 2, "left": [5, 6], "right": []},
        ]
    where each seat is `{"number": n, "available": bool}`.
    """
    taken = set(taken)
    rows = []
    for index in range(ceil(capacity / SEATS_PER_ROW)):
        first = index * SEATS_PER_ROW + 1
        last = min(first + SEATS_PER_ROW - 1, capacity)
        seats = [
            {"number": number, "available": number not in taken}
            for number in range(first, last + 1)
        ]
        rows.append(
            {
                "row": index + 1,
                "left": seats[:SEATS_LEFT_OF_AISLE],
                "right": seats[SEATS_LEFT_OF_AISLE:],
            }
        )
    return rows
