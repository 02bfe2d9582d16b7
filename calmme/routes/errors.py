from fastapi import HTTPException, status

from calmme.errors import (
    AppointmentNotFoundError,
    PermissionDeniedError,
    ScheduleConflictError,
    ScheduleNotFoundError,
    SchedulingError,
    SlotNotFoundError,
    SlotUnavailableError,
    StoreUnavailableError,
    ValidationFailedError,
)

STATUS_BY_ERROR = [
    (ValidationFailedError, status.HTTP_400_BAD_REQUEST),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (ScheduleNotFoundError, status.HTTP_404_NOT_FOUND),
    (SlotNotFoundError, status.HTTP_404_NOT_FOUND),
    (AppointmentNotFoundError, status.HTTP_404_NOT_FOUND),
    (SlotUnavailableError, status.HTTP_409_CONFLICT),
    (ScheduleConflictError, status.HTTP_409_CONFLICT),
    (StoreUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def to_http_exception(exc: SchedulingError) -> HTTPException:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.message)
