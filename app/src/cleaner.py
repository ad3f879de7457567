import datetime, logging
from app.src.db import sessionMaker
from app.src.inventory import expireHolds
from sqlalchemy.orm import Session

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("Cleaner")


def removeExpiredReservations(session: Session) -> int:
    currentTime = datetime.datetime.now(datetime.timezone.utc)
    released = expireHolds(session, currentTime)
    session.commit()
    logger.info(f"Cancelled {len(released)} expired reservations")
    return len(released)


def main():
    try:
        with sessionMaker() as session:
            removeExpiredReservations(session)
    except Exception as e:
        logger.exception("cleaner.py failed")


if __name__ == "__main__":
    main()
