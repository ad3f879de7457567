"""
Application configuration and constants for the Tripline Reservation Server.

This module centralizes environment-based configuration, reservation hold
horizons, seat layout, loyalty rates, timezones, and other constants.

Configuration values can be overridden via environment variables.
"""

from os import environ
from decimal import Decimal
from zoneinfo import ZoneInfo


# ---------------------------------------------------------------------------
# Application metadata
# ---------------------------------------------------------------------------
API_TITLE = "Tripline Reservation Server"
API_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# PostgreSQL configuration
# ---------------------------------------------------------------------------
PSQL_DB_DRIVER = environ.get("PSQL_DB_DRIVER", "postgresql")
PSQL_DB_USERNAME = environ.get("PSQL_DB_USERNAME", "postgres")
PSQL_DB_PORT = environ.get("PSQL_DB_PORT", "5432")
PSQL_DB_PASSWORD = environ.get("PSQL_DB_PASSWORD", "password")
PSQL_DB_HOST = environ.get("PSQL_DB_HOST", "localhost")
PSQL_DB_NAME = environ.get("PSQL_DB_NAME", "postgres")


# ---------------------------------------------------------------------------
# OpenObserve configuration
# ---------------------------------------------------------------------------
OPENOBSERVE_PROTOCOL = environ.get("OPENOBSERVE_PROTOCOL", "http")
OPENOBSERVE_HOST = environ.get("OPENOBSERVE_HOST", "localhost")
OPENOBSERVE_PORT = environ.get("OPENOBSERVE_PORT", "5080")
OPENOBSERVE_USERNAME = environ.get("OPENOBSERVE_USERNAME", "admin@tripline.co.bw")
OPENOBSERVE_PASSWORD = environ.get("OPENOBSERVE_PASSWORD", "password")
OPENOBSERVE_ORG = environ.get("OPENOBSERVE_ORG", "tripline")
OPENOBSERVE_STREAM = environ.get("OPENOBSERVE_STREAM", "tripline-reservation-server")


# ---------------------------------------------------------------------------
# Redis configuration
# ---------------------------------------------------------------------------
REDIS_HOST = environ.get("REDIS_HOST", "localhost")
REDIS_PORT = environ.get("REDIS_PORT", "6379")
REDIS_PASSWORD = environ.get("REDIS_PASSWORD", "password")


# ---------------------------------------------------------------------------
# Redis mutex lock constants
# ---------------------------------------------------------------------------
MUTEX_LOCK_TIMEOUT = 10  # Lock timeout (in seconds)
MUTEX_LOCK_MAX_WAIT_TIME = 60  # Max blocking wait time (in seconds)


# ---------------------------------------------------------------------------
# Timezone constants
# ---------------------------------------------------------------------------
TMZ_PRIMARY = ZoneInfo("UTC")  # Storage timezone
TMZ_LOCAL = ZoneInfo(environ.get("LOCAL_TIMEZONE", "Africa/Gaborone"))  # Service calendar


# ---------------------------------------------------------------------------
# Reservation hold constants
# ---------------------------------------------------------------------------
CHECKOUT_HOLD_TIME = int(environ.get("CHECKOUT_HOLD_TIME", 15 * 60))  # Online checkout (in seconds)
TERMINAL_HOLD_TIME = int(environ.get("TERMINAL_HOLD_TIME", 24 * 60 * 60))  # Pay at terminal (in seconds)
TERMINAL_HOLD_CUTOFF = int(environ.get("TERMINAL_HOLD_CUTOFF", 2 * 60 * 60))  # Before departure (in seconds)
BOOKING_REFERENCE_PREFIX = "BK"
CURRENCY_QUANTUM = Decimal("0.01")  # Amounts are kept in cents


# ---------------------------------------------------------------------------
# Seat and trip constraints
# ---------------------------------------------------------------------------
DEFAULT_BUS_CAPACITY = 60  # Used when a template has no bus capacity
SEATS_PER_ROW = 4  # 2 + 2 layout
SEATS_LEFT_OF_AISLE = 2
MAX_PASSENGER_COUNT = 10  # Max passengers per itinerary
PROJECTED_TRIP_PREFIX = "projected"
AUTO_TRIP_NUMBER_PREFIX = "AUTO"


# ---------------------------------------------------------------------------
# Loyalty constants
# ---------------------------------------------------------------------------
POINTS_PER_CURRENCY_UNIT = int(environ.get("POINTS_PER_CURRENCY_UNIT", 10))
REDEMPTION_RATE = Decimal(environ.get("REDEMPTION_RATE", "0.05"))  # Currency per point
TIER_GOLD_POINTS = int(environ.get("TIER_GOLD_POINTS", 5000))  # Lifetime points
TIER_PLATINUM_POINTS = int(environ.get("TIER_PLATINUM_POINTS", 15000))  # Lifetime points


# ---------------------------------------------------------------------------
# Maintenance process constants
# ---------------------------------------------------------------------------
MATERIALIZE_AHEAD_DAYS = int(environ.get("MATERIALIZE_AHEAD_DAYS", 7))
SCHEDULER_INTERVAL = 60  # Scheduler loop sleep (in seconds)
