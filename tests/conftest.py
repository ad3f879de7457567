from datetime import datetime, time, timedelta
from decimal import Decimal

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event

from app.src import db, openobserve
from app.src import redis as lockStore
from app.src.db import Bus, Route, Schedule, Trip
from app.src.enums import FrequencyType, TripStatus


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'tripline.db'}")

    @event.listens_for(engine, "connect")
    def enableForeignKeys(connection, record):
        connection.execute("PRAGMA foreign_keys=ON")

    db.ORMbase.metadata.create_all(engine)
    db.sessionMaker.configure(bind=engine)
    yield engine
    db.sessionMaker.configure(bind=db.engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    session = db.sessionMaker()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def locks(monkeypatch):
    client = fakeredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(lockStore, "redisClient", client)
    return client


@pytest.fixture(autouse=True)
def events(monkeypatch):
    shipped = []
    monkeypatch.setattr(openobserve, "logEvent", shipped.append)
    return shipped


@pytest.fixture
def client(engine):
    from app.main import app

    with TestClient(app) as client:
        yield client


@pytest.fixture
def route(session):
    route = Route(origin="Gaborone", destination="Maun", distance_km=918)
    session.add(route)
    session.commit()
    return route


@pytest.fixture
def returnRoute(session):
    route = Route(origin="Maun", destination="Gaborone", distance_km=918)
    session.add(route)
    session.commit()
    return route


@pytest.fixture
def bus(session):
    bus = Bus(registration_number="B 123 ABC", name="Kalahari Express", capacity=60)
    session.add(bus)
    session.commit()
    return bus


@pytest.fixture
def schedule(session, route, bus):
    schedule = Schedule(
        name="Gaborone - Maun morning",
        route_id=route.id,
        bus_id=bus.id,
        departure_time=time(6, 0),
        duration_hours=Decimal("6"),
        fare=Decimal("250.00"),
        frequency_type=FrequencyType.DAILY,
    )
    session.add(schedule)
    session.commit()
    return schedule


@pytest.fixture
def returnSchedule(session, returnRoute, bus):
    schedule = Schedule(
        name="Maun - Gaborone afternoon",
        route_id=returnRoute.id,
        bus_id=bus.id,
        departure_time=time(14, 0),
        duration_hours=Decimal("6"),
        fare=Decimal("230.00"),
        frequency_type=FrequencyType.DAILY,
    )
    session.add(schedule)
    session.commit()
    return schedule


@pytest.fixture
def makeTrip(session, route, bus):
    def make(departureAt: datetime, seats: int = 60, routeID: int = None, **columns):
        trip = Trip(
            route_id=routeID or route.id,
            bus_id=bus.id,
            trip_number=columns.pop("trip_number", "TRP-TEST"),
            departure_at=departureAt,
            arrival_at=departureAt + timedelta(hours=6),
            fare=columns.pop("fare", Decimal("250.00")),
            status=columns.pop("status", TripStatus.SCHEDULED),
            total_seats=seats,
            available_seats=columns.pop("available_seats", seats),
            **columns,
        )
        session.add(trip)
        session.commit()
        session.refresh(trip)
        return trip

    return make
