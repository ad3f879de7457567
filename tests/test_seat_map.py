import pytest

from app.src import exceptions
from app.src.seat_map import seatLayout, validateSelection


def test_valid_selection_is_sorted():
    assert validateSelection(60, 60, 3, [14, 2, 9]) == [2, 9, 14]


def test_seat_count_must_match_passenger_count():
    with pytest.raises(exceptions.SeatCountMismatch) as error:
        validateSelection(60, 60, 2, [1])
    assert error.value.detail["passenger_count"] == 2
    assert error.value.detail["seat_count"] == 1


def test_trip_must_have_room_for_the_party():
    with pytest.raises(exceptions.InsufficientSeats) as error:
        validateSelection(60, 1, 2, [1, 2])
    assert error.value.detail["available_seats"] == 1
    assert error.value.status_code == 409


@pytest.mark.parametrize("seats", [[0, 1], [1, 61], [5, 5]])
def test_invalid_seat_numbers(seats):
    with pytest.raises(exceptions.InvalidSeatNumber):
        validateSelection(60, 60, 2, seats)


def test_taken_seats_conflict():
    with pytest.raises(exceptions.SeatConflictError) as error:
        validateSelection(60, 58, 2, [12, 13], taken={12, 40})
    assert error.value.detail["seats"] == [12]
    assert error.value.headers["X-Error"] == "SeatConflictError"


def test_layout_rows_of_four_around_the_aisle():
    rows = seatLayout(6, taken=[3])

    assert [row["row"] for row in rows] == [1, 2]
    assert [seat["number"] for seat in rows[0]["left"]] == [1, 2]
    assert [seat["number"] for seat in rows[0]["right"]] == [3, 4]
    assert rows[0]["right"][0]["available"] is False
    assert [seat["number"] for seat in rows[1]["left"]] == [5, 6]
    assert rows[1]["right"] == []


def test_layout_covers_every_seat_once():
    rows = seatLayout(60)

    numbers = [seat["number"] for row in rows for seat in row["left"] + row["right"]]
    assert numbers == list(range(1, 61))
    assert len(rows) == 15
