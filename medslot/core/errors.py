"""Scheduling error taxonomy.

Services raise these; routes turn them into HTTP responses with
``to_http_exception``. ``code`` is stable and safe to branch on in clients.
"""

from fastapi import HTTPException, status


class SchedulingError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'scheduling_error'
    default_message = 'The scheduling request could not be completed.'

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class SlotNotFound(SchedulingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = 'slot_not_found'
    default_message = 'Time slot not found.'


class AppointmentNotFound(SchedulingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = 'appointment_not_found'
    default_message = 'Appointment not found.'


class SlotUnavailable(SchedulingError):
    status_code = status.HTTP_409_CONFLICT
    code = 'slot_unavailable'
    default_message = 'This time slot is not available. Please choose a different time.'


class CapacityExceeded(SchedulingError):
    status_code = status.HTTP_409_CONFLICT
    code = 'slot_full'
    default_message = 'This time slot has reached its capacity.'


class SlotFull(CapacityExceeded):
    default_message = 'Someone just took the last spot in this time slot. Please refresh.'


class NotAuthenticated(SchedulingError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = 'not_authenticated'
    default_message = 'User not authenticated.'


class ConflictRequiresEmergencyCancellation(SchedulingError):
    status_code = status.HTTP_409_CONFLICT
    code = 'requires_emergency_cancellation'
    default_message = 'This slot has booked appointments. Use emergency cancellation to disable it.'

    def __init__(self, appointment_ids: list[int] | None = None, message: str | None = None) -> None:
        self.appointment_ids = list(appointment_ids or [])
        super().__init__(message)


class InvalidCapacity(SchedulingError):
    code = 'invalid_capacity'
    default_message = 'Capacity must be a positive number.'


class InvalidDelay(SchedulingError):
    code = 'invalid_delay'
    default_message = 'Delay must be a positive number of minutes.'


class InvalidCancellationReason(SchedulingError):
    code = 'invalid_cancellation_reason'
    default_message = 'A cancellation reason is required.'


class InvalidStatusTransition(SchedulingError):
    status_code = status.HTTP_409_CONFLICT
    code = 'invalid_status_transition'
    default_message = 'This appointment can no longer change to the requested status.'


class PaymentNotVerified(SchedulingError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = 'payment_not_verified'
    default_message = 'Payment has not been verified for this booking.'


class PersistenceFailure(SchedulingError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = 'persistence_failure'
    default_message = 'Database unavailable. Please try again.'


def to_http_exception(exc: SchedulingError) -> HTTPException:
    detail = {'code': exc.code, 'message': exc.message}
    if isinstance(exc, ConflictRequiresEmergencyCancellation):
        detail['appointment_ids'] = exc.appointment_ids
    return HTTPException(status_code=exc.status_code, detail=detail)
