"""Custom exceptions for SOS Relay"""


class SosRelayException(Exception):
    """Base exception for all SOS Relay errors

    All custom exceptions inherit from this class. HTTP routes let it
    propagate to the global exception handler, which returns ErrorResponse
    with ``status_code``. The WebSocket session turns it into a failed ack.

    Attributes:
        message: Human-readable error message
        code: Error code for client-side error handling
        status_code: HTTP status used when raised from an HTTP route
    """

    status_code = 500

    def __init__(self, message: str, code: str):
        """Initialize SOS Relay exception

        Args:
            message: Human-readable error message
            code: Error code (e.g., "VALIDATION_ERROR", "STORE_ERROR")
        """
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(SosRelayException):
    """Inbound alert failed validation

    Examples:
        - Missing id, timestamp or alertType
        - location/user/device is not an object
    """

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message, "VALIDATION_ERROR")


class StoreError(SosRelayException):
    """Durable storage read or write failed

    Examples:
        - Database file cannot be opened
        - Disk full while writing an alert
        - Table missing or locked
    """

    def __init__(self, message: str):
        super().__init__(message, "STORE_ERROR")


class DeliveryError(SosRelayException):
    """A single broadcast target could not be reached

    Isolated per target: never aggregated into the broadcast result and
    never retried.
    """

    def __init__(self, session_id: str, message: str):
        self.session_id = session_id
        super().__init__(message, "DELIVERY_ERROR")


class ProtocolError(SosRelayException):
    """Malformed or unsupported inbound WebSocket message

    Attributes:
        fatal: True if the session cannot continue (e.g. oversized frame)
    """

    status_code = 400

    def __init__(self, message: str, code: str = "NOT_IMPLEMENTED", fatal: bool = False):
        self.fatal = fatal
        super().__init__(message, code)
