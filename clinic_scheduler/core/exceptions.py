"""Custom application exceptions."""


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class SlotUnavailableException(ConflictException):
    """Requested time slot failed the availability check."""

    def __init__(self, reason: str):
        """Initialize with the evaluator's reason."""
        self.reason = reason
        super().__init__(f"Time slot not available: {reason}")


class InvalidTransitionException(ConflictException):
    """Appointment status does not allow the requested transition."""

    def __init__(self, message: str = "Invalid appointment status transition"):
        """Initialize with 409 status code."""
        super().__init__(message)


class NotReschedulableException(InvalidTransitionException):
    """Appointment cannot be rescheduled from its current state."""

    def __init__(self, message: str = "Appointment cannot be rescheduled"):
        super().__init__(message)


class NotCancellableException(InvalidTransitionException):
    """Appointment cannot be cancelled from its current state."""

    def __init__(self, message: str = "Appointment cannot be cancelled"):
        super().__init__(message)


class BusyException(AppException):
    """Schedule lock could not be acquired in time. Safe to retry."""

    def __init__(self, message: str = "Schedule is busy, please retry"):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503)
