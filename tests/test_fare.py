from decimal import Decimal

import pytest

from app.src import exceptions, fare


def test_leg_total_is_fare_times_seats():
    assert fare.legTotal(Decimal("250"), 2) == Decimal("500.00")
    assert fare.legTotal("19.999", 3) == Decimal("60.00")


def test_grand_total_adds_the_return_leg():
    assert fare.grandTotal(Decimal("500.00")) == Decimal("500.00")
    assert fare.grandTotal(Decimal("500.00"), Decimal("460.00")) == Decimal("960.00")


def test_quote():
    quote = fare.quote(Decimal("250.00"), 2, Decimal("230.00"))

    assert quote == {
        "seat_count": 2,
        "outbound_total": Decimal("500.00"),
        "inbound_total": Decimal("460.00"),
        "grand_total": Decimal("960.00"),
    }
    assert fare.quote(Decimal("250.00"), 1)["inbound_total"] is None


def test_negative_seat_count_is_rejected():
    with pytest.raises(exceptions.ValidationError):
        fare.legTotal(Decimal("250.00"), -1)
