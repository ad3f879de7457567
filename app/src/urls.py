"""
API Endpoint URL Constants

This module defines the URL paths of the reservation resources.

These URLs are relative paths, prefixed by the mount point of the
sub application (`/public` or `/operator`).
"""

# -------------------------------
# Trips
# -------------------------------
URL_SCHEDULE = "/schedule"
URL_TRIP = "/trip"
URL_TRIP_SEARCH = "/trip/search"
URL_TRIP_SEAT = "/trip/seat"

# -------------------------------
# Bookings
# -------------------------------
URL_BOOKING = "/booking"
URL_BOOKING_QUOTE = "/booking/quote"
URL_BOOKING_CONFIRM = "/booking/confirm"
URL_BOOKING_EXPIRE = "/booking/expire"

# -------------------------------
# Loyalty
# -------------------------------
URL_LOYALTY = "/loyalty"
URL_LOYALTY_TRANSACTION = "/loyalty/transaction"
URL_LOYALTY_REDEEM = "/loyalty/redeem"
URL_LOYALTY_ADJUST = "/loyalty/adjust"
