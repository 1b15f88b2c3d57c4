"""Error kinds raised by the scheduling core.

The HTTP layer maps each kind to a status code; the core itself never deals in
transport codes.
"""


class SchedulingError(Exception):
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(SchedulingError):
    code = "INVALID_INPUT"
    default_message = "Invalid input"


class InvalidRange(SchedulingError):
    code = "INVALID_RANGE"
    default_message = "End time must be after start time"


class NotFound(SchedulingError):
    code = "NOT_FOUND"
    default_message = "Not found"


class Forbidden(SchedulingError):
    code = "FORBIDDEN"
    default_message = "Forbidden"


class Conflict(SchedulingError):
    code = "CONFLICT"
    default_message = "Schedule conflict"


class Unavailable(SchedulingError):
    code = "UNAVAILABLE"
    default_message = "Database unavailable"


class InternalError(SchedulingError):
    pass
