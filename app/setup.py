import argparse
from http import HTTPStatus
from requests import post
from datetime import datetime, time, timedelta
from decimal import Decimal

from app.src.enums import Day, FrequencyType, PaymentMethod
from app.src.constants import TMZ_LOCAL
from app.src.urls import URL_BOOKING, URL_TRIP
from app.src.db import (
    Bus,
    Route,
    Schedule,
    sessionMaker,
    engine,
    ORMbase,
)


# ----------------------------------- Project Setup -------------------------------------------#
def removeTables():
    session = sessionMaker()
    ORMbase.metadata.drop_all(engine)
    session.commit()
    print("* All tables deleted")
    session.close()


def createTables():
    session = sessionMaker()
    ORMbase.metadata.create_all(engine)
    session.commit()
    print("* All tables created")
    session.close()


def initDB():
    session = sessionMaker()
    outbound = Route(origin="Gaborone", destination="Maun", distance_km=918)
    inbound = Route(origin="Maun", destination="Gaborone", distance_km=918)
    northern = Route(
        origin="Gaborone", destination="Francistown", distance_km=433
    )
    session.add_all([outbound, inbound, northern])
    session.flush()
    print("* Created routes")

    coach = Bus(
        registration_number="B 123 ABC",
        name="Kalahari Express",
        bus_type="Luxury coach",
        capacity=60,
    )
    shuttle = Bus(
        registration_number="B 456 DEF",
        name="Okavango Shuttle",
        bus_type="Standard",
        capacity=44,
    )
    session.add_all([coach, shuttle])
    session.flush()
    print("* Created buses")

    session.add_all(
        [
            Schedule(
                name="Gaborone - Maun morning",
                route_id=outbound.id,
                bus_id=coach.id,
                departure_time=time(6, 0),
                duration_hours=Decimal("6"),
                fare=Decimal("250.00"),
                frequency_type=FrequencyType.DAILY,
            ),
            Schedule(
                name="Maun - Gaborone afternoon",
                route_id=inbound.id,
                bus_id=coach.id,
                departure_time=time(14, 0),
                duration_hours=Decimal("6"),
                fare=Decimal("250.00"),
                frequency_type=FrequencyType.DAILY,
            ),
            Schedule(
                name="Gaborone - Francistown midweek",
                route_id=northern.id,
                bus_id=shuttle.id,
                departure_time=time(9, 30),
                duration_hours=Decimal("4.5"),
                fare=Decimal("140.00"),
                frequency_type=FrequencyType.SPECIFIC_DAYS,
                frequency=[Day.MONDAY, Day.WEDNESDAY, Day.FRIDAY],
            ),
        ]
    )
    session.commit()
    print("* Created schedules")
    print("* Initialization completed")
    session.close()


def POST(URL: str, header: dict = {}, status_code: int = HTTPStatus.CREATED, **kwargs):
    response = post(URL, headers=header, **kwargs)
    if response.status_code != status_code:
        assert response.status_code == status_code
    else:
        return response


def testDB():
    # Base URL
    BASE_URL = "http://127.0.0.1:8080"

    # Create an extra evening trip next week
    departure = datetime.combine(
        datetime.now(TMZ_LOCAL).date() + timedelta(days=7), time(18, 0), TMZ_LOCAL
    )
    tripData = {
        "route_id": 1,
        "bus_id": 2,
        "departure_at": departure.isoformat(),
        "arrival_at": (departure + timedelta(hours=6)).isoformat(),
        "fare": "280.00",
    }
    trip = POST(
        (BASE_URL + "/operator" + URL_TRIP),
        data=tripData,
        status_code=HTTPStatus.CREATED,
    )
    print("* Created evening trip")

    # Book two seats on it
    bookingData = {
        "customer_id": "customer-001",
        "payment_method": PaymentMethod.CARD,
        "passenger_count": 2,
        "passengers": [
            {"name": "Neo Kgosi", "email": "neo@example.com"},
            {"name": "Mpho Kgosi"},
        ],
        "outbound": {"trip": str(trip.json()["id"]), "seats": [11, 12]},
    }
    booking = POST(
        (BASE_URL + "/public" + URL_BOOKING),
        json=bookingData,
        status_code=HTTPStatus.CREATED,
    )
    print(f"* Created booking {booking.json()['booking_reference']}")


# Setup database
if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    # remove tables
    parser.add_argument("-rm", action="store_true", help="remove tables")
    parser.add_argument("-cr", action="store_true", help="create tables")
    parser.add_argument("-init", action="store_true", help="initialize DB")
    parser.add_argument("-test", action="store_true", help="add test data")
    args = parser.parse_args()

    if args.cr:
        createTables()
    if args.init:
        initDB()
    if args.test:
        testDB()
    if args.rm:
        removeTables()
