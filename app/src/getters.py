from typing import Dict, Iterable
from fastapi import Request
from sqlalchemy import func
from sqlalchemy.orm.session import Session

from app.src import schemas
from app.src.db import Bus, Route


def requestInfo(request: Request) -> schemas.RequestInfo:
    """
    Extract metadata about the incoming request.

    Args:
        request (Request): FastAPI request object.

    Returns:
        schemas.RequestInfo: Pydantic model containing:
            - method (str): HTTP method (GET, POST, etc.).
            - path (str): Path portion of the request URL.
            - app_id (int): Application ID from app state.
    """
    return schemas.RequestInfo(
        method=request.method,
        path=request.url.path,
        app_id=request.scope["app"].state.id,
    )


def route(session: Session, origin: str, destination: str) -> Route | None:
    """Find a route by town names, ignoring case and surrounding spaces."""
    return (
        session.query(Route)
        .filter(func.lower(Route.origin) == origin.strip().lower())
        .filter(func.lower(Route.destination) == destination.strip().lower())
        .first()
    )


def buses(session: Session, busIDs: Iterable[int]) -> Dict[int, Bus]:
    busIDs = {busID for busID in busIDs if busID is not None}
    if not busIDs:
        return {}
    return {bus.id: bus for bus in session.query(Bus).filter(Bus.id.in_(list(busIDs)))}
