from app.src import openobserve
from app.src.schemas import RequestInfo


def logEvent(requestInfo: RequestInfo, data: dict) -> None:
    """
    Log a reservation event to OpenObserve with request context.

    Args:
        requestInfo (RequestInfo): Metadata about the current request.
        data (dict): Event-specific details, already JSON encoded.

    Notes:
        - Automatically attaches `_app_id`, `_method` and `_path`.
        - Attaches `_customer_id` when the event carries a customer.
    """
    logDetails = {
        "_method": requestInfo.method,
        "_path": requestInfo.path,
        "_app_id": requestInfo.app_id,
    }
    if data.get("customer_id") is not None:
        logDetails["_customer_id"] = data["customer_id"]

    logDetails.update(data)
    openobserve.logEvent(logDetails)
