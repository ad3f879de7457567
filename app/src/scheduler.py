import time
import logging
from sqlalchemy.orm import Session
from datetime import date, datetime, timedelta
from typing import List

from app.src import getters
from app.src.db import sessionMaker, Route, Schedule, Trip
from app.src.constants import MATERIALIZE_AHEAD_DAYS, SCHEDULER_INTERVAL, TMZ_LOCAL
from app.src.projection import fires, projectTrip
from app.api.trip import materializeTrip, slotTrip

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("Scheduler")


def materializeAhead(session: Session, today: date, days: int) -> List[Trip]:
    """
    Persist the trips every active schedule implies for the coming days.

    Slots that already hold a persisted trip are left alone, so running
    the pass again creates nothing.

    Returns:
        List[Trip]: The trips created by this pass.
    """
    schedules = session.query(Schedule).filter(Schedule.active.is_(True)).all()
    routes = {
        route.id: route
        for route in session.query(Route).filter(
            Route.id.in_([item.route_id for item in schedules])
        )
    }
    buses = getters.buses(session, [item.bus_id for item in schedules])

    created = []
    for offset in range(days):
        serviceDate = today + timedelta(days=offset)
        for schedule in schedules:
            if not fires(schedule, serviceDate):
                continue
            projected = projectTrip(
                schedule,
                routes[schedule.route_id],
                buses.get(schedule.bus_id),
                serviceDate,
            )
            if slotTrip(session, projected.route_id, projected.departure_at):
                continue
            trip = materializeTrip(session, projected)
            created.append(trip)
            logger.info(f" Trip {trip.trip_number} created for schedule {schedule.id}")
    return created


def runScheduler(session: Session):
    while True:
        try:
            today = datetime.now(TMZ_LOCAL).date()
            created = materializeAhead(session, today, MATERIALIZE_AHEAD_DAYS)
            logger.info(f"Materialized {len(created)} trips")
        except Exception as e:
            session.rollback()
            logger.exception("Scheduler loop failed")
        finally:
            time.sleep(SCHEDULER_INTERVAL)


def main():
    try:
        with sessionMaker() as session:
            runScheduler(session)
    except Exception as e:
        logger.exception("scheduler.py failed")


if __name__ == "__main__":
    main()
