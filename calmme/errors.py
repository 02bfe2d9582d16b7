"""Domain errors raised by the scheduling services.

Every error carries a human-readable ``message``; the HTTP layer maps each class
to a status code in ``calmme.routes.errors``.
"""


class SchedulingError(Exception):
    default_message = 'Scheduling request failed.'

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailedError(SchedulingError):
    default_message = 'Invalid request.'


class InvalidDateError(ValidationFailedError):
    default_message = 'Dates must use the YYYY-MM-DD format.'


class ScheduleNotFoundError(SchedulingError):
    default_message = 'No schedule exists for this day.'


class SlotNotFoundError(SchedulingError):
    default_message = 'Time slot not found in schedule.'


class SlotUnavailableError(SchedulingError):
    default_message = 'This time slot is already booked.'


class ScheduleConflictError(SchedulingError):
    default_message = 'The schedule changed while booking. Please try again.'


class AppointmentNotFoundError(SchedulingError):
    default_message = 'Appointment not found.'


class StoreUnavailableError(SchedulingError):
    default_message = 'Database unavailable. Verify DATABASE_URL and database credentials.'


class PermissionDeniedError(SchedulingError):
    default_message = 'You are not allowed to change this resource.'
