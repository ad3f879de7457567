from sqlalchemy import (
    ARRAY,
    JSON,
    TEXT,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Time,
    TypeDecorator,
    UniqueConstraint,
    create_engine,
    func,
)
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
from sqlalchemy.dialects.postgresql import JSONB

from app.src.constants import (
    PSQL_DB_DRIVER,
    PSQL_DB_HOST,
    PSQL_DB_PASSWORD,
    PSQL_DB_NAME,
    PSQL_DB_PORT,
    PSQL_DB_USERNAME,
    TMZ_PRIMARY,
)
from app.src.enums import (
    BookingStatus,
    FrequencyType,
    LoyaltyTier,
    TripStatus,
)


# Global DBMS variables
dbURL = f"{PSQL_DB_DRIVER}://{PSQL_DB_USERNAME}:{PSQL_DB_PASSWORD}@{PSQL_DB_HOST}:{PSQL_DB_PORT}/{PSQL_DB_NAME}"
engine = create_engine(url=dbURL, echo=False)
sessionMaker = sessionmaker(bind=engine, expire_on_commit=False)
ORMbase = declarative_base()


# ----------------------------------- Column Types --------------------------------------------#
class TZDateTime(TypeDecorator):
    """
    Timezone aware timestamp stored in UTC.

    PostgreSQL keeps the offset natively. Backends without timezone support
    receive a naive UTC value and get UTC attached back on load, so that
    comparisons against aware datetimes stay correct everywhere.
    Naive input values are taken as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            value = value.replace(tzinfo=TMZ_PRIMARY)
        value = value.astimezone(TMZ_PRIMARY)
        if dialect.name != "postgresql":
            value = value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=TMZ_PRIMARY)
        return value


JSONData = JSON().with_variant(JSONB(), "postgresql")
DayList = JSON().with_variant(ARRAY(Integer), "postgresql")


# ----------------------------------- Network DB Models ---------------------------------------#
class Route(ORMbase):
    """
    Represents a directed origin to destination pair served by the fleet.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the route.

        origin (String(64)):
            Name of the departure town.
            Must be non-null. Indexed for trip search.

        destination (String(64)):
            Name of the arrival town.
            Must be non-null. Indexed for trip search.
            The pair (origin, destination) is unique.

        distance_km (Integer):
            Optional road distance, informative only.

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Timestamp indicating when the route was created.
    """

    __tablename__ = "route"
    __table_args__ = (UniqueConstraint("origin", "destination"),)

    id = Column(Integer, primary_key=True)
    origin = Column(String(64), nullable=False, index=True)
    destination = Column(String(64), nullable=False, index=True)
    distance_km = Column(Integer)
    # Metadata
    updated_on = Column(TZDateTime, onupdate=func.now())
    created_on = Column(TZDateTime, nullable=False, default=func.now())


class Bus(ORMbase):
    """
    Represents a coach in the fleet.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the bus.

        registration_number (String(16)):
            This should be an immutable value.
            Vehicle registration number. Unique and non-null.

        name (String(32)):
            Display name or label for the bus, shown on tickets.

        bus_type (String(32)):
            Free form class of the coach (ex:- Luxury, Semi-luxury).

        capacity (Integer):
            Number of passenger seats. Seats are numbered 1..capacity,
            front to back, four per row.
            Must be non-null and positive.

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Timestamp indicating when the bus record was initially created.
    """

    __tablename__ = "bus"
    __table_args__ = (CheckConstraint("capacity > 0"),)

    id = Column(Integer, primary_key=True)
    registration_number = Column(String(16), nullable=False, unique=True)
    name = Column(String(32), nullable=False, index=True)
    bus_type = Column(String(32))
    capacity = Column(Integer, nullable=False)
    # Metadata
    updated_on = Column(TZDateTime, onupdate=func.now())
    created_on = Column(TZDateTime, nullable=False, default=func.now())


class Schedule(ORMbase):
    """
    Represents a recurring service definition (a template).

    A schedule implies one trip on every day it fires without persisting it.
    The reservation engine only reads schedules. They are never deleted
    while trips reference them, operations staff deactivate them instead.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the schedule.

        name (String(128)):
            Human-readable name of the schedule.
            Indexed for efficient lookup.

        route_id (Integer):
            Foreign key referencing the route served.
            Must be non-null.

        bus_id (Integer):
            Foreign key referencing the bus assigned to the service.
            Nullable. If deleted, set to NULL and projected trips fall back
            to the default bus capacity.

        departure_time (Time):
            Time of day of departure in the local service calendar.

        duration_hours (Numeric):
            Scheduled travel time. Arrival is departure plus this duration.

        fare (Numeric):
            Price of one seat.

        frequency_type (Integer):
            Recurrence rule, mapped from `FrequencyType`.
            `DAILY` fires every day, the other rules fire only on the
            weekdays listed in `frequency`.

        frequency (ARRAY(Integer)):
            List of `Day` values (Monday=1 .. Sunday=7).
            An empty list never fires for `WEEKLY` or `SPECIFIC_DAYS`.

        active (Boolean):
            Soft deactivation flag. Inactive schedules never project.

        updated_on (DateTime):
            Timestamp automatically updated whenever the schedule is modified.

        created_on (DateTime):
            Timestamp when the schedule was created.
    """

    __tablename__ = "schedule"

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False, index=True)
    route_id = Column(Integer, ForeignKey("route.id"), nullable=False, index=True)
    bus_id = Column(Integer, ForeignKey("bus.id", ondelete="SET NULL"))
    departure_time = Column(Time, nullable=False)
    duration_hours = Column(Numeric(5, 2), nullable=False)
    fare = Column(Numeric(10, 2), nullable=False)
    frequency_type = Column(Integer, nullable=False, default=FrequencyType.DAILY)
    frequency = Column(DayList)
    active = Column(Boolean, nullable=False, default=True)
    # Metadata
    updated_on = Column(TZDateTime, onupdate=func.now())
    created_on = Column(TZDateTime, nullable=False, default=func.now())


class Trip(ORMbase):
    """
    Represents a persisted, bookable departure.

    Rows are created ahead of time by an operator, by the materialization
    pass of the scheduler, or on the first booking against a projected trip.

    Columns:
        id (Integer):
            Primary key. Durable identifier of the trip.

        route_id (Integer):
            Foreign key referencing the route. Must be non-null.

        bus_id (Integer):
            Foreign key referencing the assigned bus.

        schedule_id (Integer):
            Schedule the trip was materialized from.
            NULL for trips created directly by an operator.

        trip_number (String(32)):
            Human friendly trip code printed on tickets.

        departure_at (DateTime):
            Scheduled departure, truncated to the minute.
            Unique together with `route_id`, which backs the rule that a route
            never has two departures in the same minute.

        arrival_at (DateTime):
            Scheduled arrival. Must be after `departure_at`.

        fare (Numeric):
            Price of one seat on this trip.

        status (Integer):
            Lifecycle state, mapped from `TripStatus`.
            Defaults to `SCHEDULED`.

        total_seats (Integer):
            Seat capacity of the trip.

        available_seats (Integer):
            Seats not held by an active booking. Only changed through
            conditional updates so it never goes negative.

        updated_on (DateTime):
            Timestamp automatically updated whenever the trip is modified.

        created_on (DateTime):
            Timestamp indicating when the trip row was created.
    """

    __tablename__ = "trip"
    __table_args__ = (
        UniqueConstraint("route_id", "departure_at"),
        CheckConstraint("available_seats >= 0"),
        CheckConstraint("available_seats <= total_seats"),
        CheckConstraint("arrival_at > departure_at"),
    )

    id = Column(Integer, primary_key=True)
    route_id = Column(Integer, ForeignKey("route.id"), nullable=False, index=True)
    bus_id = Column(Integer, ForeignKey("bus.id", ondelete="SET NULL"))
    schedule_id = Column(Integer, ForeignKey("schedule.id", ondelete="SET NULL"))
    trip_number = Column(String(32), nullable=False)
    departure_at = Column(TZDateTime, nullable=False, index=True)
    arrival_at = Column(TZDateTime, nullable=False)
    fare = Column(Numeric(10, 2), nullable=False)
    status = Column(Integer, nullable=False, default=TripStatus.SCHEDULED)
    total_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)
    # Metadata
    updated_on = Column(TZDateTime, onupdate=func.now())
    created_on = Column(TZDateTime, nullable=False, default=func.now())


class Booking(ORMbase):
    """
    Represents one seat on one leg of an itinerary.

    Every row of an itinerary (all seats, outbound and return) shares the
    same `booking_reference`. Rows are never deleted, a cancelled booking
    stays as history and frees its seat.

    Columns:
        id (Integer):
            Primary key.

        booking_reference (String(16)):
            Customer facing itinerary code (ex:- BK12345678AB3Z).
            Indexed, not unique.

        trip_id (Integer):
            Foreign key referencing the persisted trip.

        leg (Integer):
            Mapped from `Leg` (OUTBOUND or RETURN).

        customer_id (String(64)):
            Optional identity of the customer account, used for loyalty.

        seat_number (Integer):
            Seat held, 1..trip capacity. Unique per trip among the
            bookings that are not cancelled.

        passenger_name, passenger_email, passenger_phone, passenger_id_number:
            Traveller details captured at checkout.

        fare (Numeric):
            Price of the seat at booking time.

        amount_paid (Numeric):
            Settled amount. Equals `fare` once confirmed.

        balance (Numeric):
            Outstanding amount. Zero once confirmed.

        payment_method (Integer):
            Mapped from `PaymentMethod`. Decides the initial status and hold.

        booking_status (Integer):
            Mapped from `BookingStatus`.

        reservation_expires_at (DateTime):
            Deadline of a RESERVED booking. NULL for settled bookings.

        trip_snapshot (JSONB):
            Description of the trip as it was booked (route, timestamps,
            bus, trip number and projected identifier when applicable).

        confirmed_on (DateTime):
            Time at which the payment was recorded.

        cancelled_on (DateTime):
            Time at which the booking was cancelled or expired.

        updated_on (DateTime):
            Timestamp automatically updated whenever the booking is modified.

        created_on (DateTime):
            Timestamp indicating when the booking was created.
    """

    __tablename__ = "booking"

    id = Column(Integer, primary_key=True)
    booking_reference = Column(String(16), nullable=False, index=True)
    trip_id = Column(Integer, ForeignKey("trip.id"), nullable=False, index=True)
    leg = Column(Integer, nullable=False)
    customer_id = Column(String(64), index=True)
    seat_number = Column(Integer, nullable=False)
    passenger_name = Column(String(64), nullable=False)
    passenger_email = Column(String(254))
    passenger_phone = Column(String(32))
    passenger_id_number = Column(String(32))
    fare = Column(Numeric(10, 2), nullable=False)
    amount_paid = Column(Numeric(10, 2), nullable=False, default=0)
    balance = Column(Numeric(10, 2), nullable=False, default=0)
    payment_method = Column(Integer, nullable=False)
    booking_status = Column(Integer, nullable=False)
    reservation_expires_at = Column(TZDateTime)
    trip_snapshot = Column(JSONData, nullable=False)
    confirmed_on = Column(TZDateTime)
    cancelled_on = Column(TZDateTime)
    # Metadata
    updated_on = Column(TZDateTime, onupdate=func.now())
    created_on = Column(TZDateTime, nullable=False, default=func.now())


# A seat belongs to at most one live booking per trip
Index(
    "booking_trip_seat_key",
    Booking.trip_id,
    Booking.seat_number,
    unique=True,
    postgresql_where=Booking.booking_status != BookingStatus.CANCELLED,
    sqlite_where=Booking.booking_status != BookingStatus.CANCELLED,
)


# ----------------------------------- Loyalty DB Models ---------------------------------------#
class LoyaltyAccount(ORMbase):
    """
    Points balance of a customer.

    Columns:
        id (Integer):
            Primary key.

        customer_id (String(64)):
            External identity of the customer. Unique.

        total_points (Integer):
            Spendable balance. Never negative, always equal to the sum of the
            account's transactions.

        lifetime_points (Integer):
            Total ever earned. Drives the tier.

        tier (Integer):
            Mapped from `LoyaltyTier`. Only ever promoted.

        updated_on (DateTime):
            Timestamp automatically updated whenever the account is modified.

        created_on (DateTime):
            Timestamp indicating when the account was opened.
    """

    __tablename__ = "loyalty_account"
    __table_args__ = (CheckConstraint("total_points >= 0"),)

    id = Column(Integer, primary_key=True)
    customer_id = Column(String(64), nullable=False, unique=True)
    total_points = Column(Integer, nullable=False, default=0)
    lifetime_points = Column(Integer, nullable=False, default=0)
    tier = Column(Integer, nullable=False, default=LoyaltyTier.SILVER)
    # Metadata
    updated_on = Column(TZDateTime, onupdate=func.now())
    created_on = Column(TZDateTime, nullable=False, default=func.now())


class LoyaltyTransaction(ORMbase):
    """
    Append-only ledger entry of a loyalty account.

    `points` is signed: earnings and positive adjustments are positive,
    redemptions, expiries and negative adjustments are negative.
    """

    __tablename__ = "loyalty_transaction"

    id = Column(Integer, primary_key=True)
    account_id = Column(
        Integer, ForeignKey("loyalty_account.id"), nullable=False, index=True
    )
    type = Column(Integer, nullable=False)
    points = Column(Integer, nullable=False)
    description = Column(TEXT)
    booking_id = Column(Integer, ForeignKey("booking.id"))
    # Metadata
    created_on = Column(TZDateTime, nullable=False, default=func.now())
