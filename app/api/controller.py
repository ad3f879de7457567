from fastapi import FastAPI
from app.api import trip, seat, booking, loyalty, schedule
from app.src.enums import AppID


# ------------------------------------------------------
# Create separate FastAPI apps for each user domain
# ------------------------------------------------------
app_operator = FastAPI(title="Operator APP")
app_public = FastAPI(title="Public APP")

# Tag each app with its AppID
app_operator.state.id = AppID.OPERATOR
app_public.state.id = AppID.PUBLIC


# ------------------------------------------------------
# Operator routers
# ------------------------------------------------------
app_operator.include_router(schedule.route_operator)
app_operator.include_router(trip.route_operator)
app_operator.include_router(booking.route_operator)
app_operator.include_router(loyalty.route_operator)


# ------------------------------------------------------
# Public routers
# ------------------------------------------------------
app_public.include_router(trip.route_public)
app_public.include_router(seat.route_public)
app_public.include_router(booking.route_public)
app_public.include_router(loyalty.route_public)
