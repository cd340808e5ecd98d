"""
Service error taxonomy. Each error carries the HTTP status the API layer responds with.
"""


class ServiceError(Exception):
    """Base class for errors raised by the data engine and its services."""

    status_code = 500
    default_message = "Service Error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequest(ServiceError):
    status_code = 400
    default_message = "Request error"


class Unauthorized(ServiceError):
    status_code = 401
    default_message = "User session does not exist"


class Forbidden(ServiceError):
    status_code = 403
    default_message = "Access denied"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Resource not found"


class Conflict(ServiceError):
    status_code = 409
    default_message = "Resource conflict"


class RuleSyntaxError(BadRequest):
    """A rule expression could not be tokenized or parsed."""

    default_message = "Invalid rule expression"
