"""Scheduling error taxonomy.

Every error carries an HTTP status and a machine-readable code so the route
layer can translate it into an ``HTTPException`` without guessing.
"""

from typing import Any


class SchedulingError(Exception):
    status_code = 500
    code = 'scheduling_error'

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {'code': self.code, 'message': self.message}
        if self.details:
            detail.update(self.details)
        return detail


class InvalidDateError(SchedulingError, ValueError):
    status_code = 400
    code = 'invalid_date'


class InvalidSlotError(SchedulingError, ValueError):
    status_code = 400
    code = 'invalid_slot'


class NotFoundError(SchedulingError):
    status_code = 404
    code = 'not_found'


class PermissionDeniedError(SchedulingError):
    status_code = 403
    code = 'permission_denied'


class ConflictError(SchedulingError):
    status_code = 409
    code = 'conflict'


class DateUnavailableError(ConflictError):
    code = 'date_unavailable'


class SlotUnavailableError(ConflictError):
    """The requested slot was taken or blocked before the write landed."""

    code = 'slot_unavailable'
    user_message = 'This time is no longer available. Please choose another.'


class BookingConflictError(ConflictError):
    code = 'booking_conflict'


class StaleAppointmentError(ConflictError):
    code = 'stale_appointment'


class InvalidStatusTransitionError(ConflictError):
    code = 'invalid_status_transition'
