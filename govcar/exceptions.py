"""Error kinds raised by the dispatch core."""


class DispatchError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    code = "DISPATCH_ERROR"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.__class__.__doc__.strip()
        super().__init__(self.detail)


class NotFound(DispatchError):
    """Referenced record does not exist."""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, kind: str, record_id: object):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id} not found")


class InvalidArgument(DispatchError):
    """A required argument is missing or not acceptable."""

    status_code = 400
    code = "INVALID_ARGUMENT"


class NoDriverAvailable(DispatchError):
    """No active and available driver is in the queue."""

    status_code = 409
    code = "NO_DRIVER_AVAILABLE"


class DriverUnavailable(DispatchError):
    """Driver became ineligible between selection and commit."""

    status_code = 409
    code = "DRIVER_UNAVAILABLE"

    def __init__(self, driver_id: str):
        self.driver_id = driver_id
        super().__init__(f"Driver {driver_id} is no longer available")


class StoreError(DispatchError):
    """Data store operation failed; nothing was committed."""

    status_code = 503
    code = "STORE_ERROR"


class NotificationError(DispatchError):
    """A best-effort notification channel failed."""

    code = "NOTIFICATION_ERROR"
