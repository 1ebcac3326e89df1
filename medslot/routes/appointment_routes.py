from datetime import date, datetime, time

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medslot.auth.dependencies import CurrentUser, require_patient, require_staff
from medslot.core.errors import AppointmentNotFound, SchedulingError, to_http_exception
from medslot.database import get_db
from medslot.models.appointment import Appointment
from medslot.models.time_slot import TimeSlot
from medslot.routes.common import database_unavailable, ensure_database_ready
from medslot.services import booking
from medslot.services.appointment_status import AppointmentStatus, display_status, is_missed
from medslot.services.stores import AppointmentStore

router = APIRouter(tags=['appointments'])

MAX_APPOINTMENT_NOTES_LENGTH = 600
MAX_REASON_LENGTH = 200


def _normalize_optional_text(value: str | None, max_length: int, label: str) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > max_length:
        raise ValueError(f'{label} must be {max_length} characters or fewer.')

    return normalized


class BookAppointmentRequest(BaseModel):
    staff_id: int
    slot_id: int | None = None
    appointment_date: date
    payment_reference: str | None = None
    reason: str | None = None
    notes: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value, MAX_REASON_LENGTH, 'Reason')

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value, MAX_APPOINTMENT_NOTES_LENGTH, 'Notes')


class BookingResponse(BaseModel):
    appointment_id: int
    slot_id: int
    status: AppointmentStatus
    remaining_capacity: int

    class Config:
        from_attributes = True


class RescheduleRequest(BaseModel):
    new_slot_id: int


class CancelRequest(BaseModel):
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value, MAX_REASON_LENGTH, 'Reason')


class StatusUpdateRequest(BaseModel):
    status: str
    reason: str | None = None


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    staff_id: int
    time_slot_id: int | None = None
    appointment_date: date
    appointment_time: time | None = None
    status: str
    display_status: str
    missed: bool = False
    reason: str | None = None
    notes: str | None = None
    cancellation_reason: str | None = None
    is_running_late: bool = False
    delay_minutes: int = 0


def build_appointment_response(
    appointment: Appointment,
    slot: TimeSlot | None,
    now: datetime | None = None,
) -> AppointmentResponse:
    now = now or datetime.now()
    slot_end = slot.end_time if slot is not None else None

    return AppointmentResponse(
        id=appointment.id,
        patient_id=appointment.patient_id,
        staff_id=appointment.staff_id,
        time_slot_id=appointment.time_slot_id,
        appointment_date=appointment.appointment_date,
        appointment_time=appointment.appointment_time,
        status=appointment.status,
        display_status=display_status(now, appointment.appointment_date, slot_end, appointment.status),
        missed=is_missed(now, appointment.appointment_date, slot_end, appointment.status),
        reason=appointment.reason,
        notes=appointment.notes,
        cancellation_reason=appointment.cancellation_reason,
        is_running_late=bool(slot.is_running_late) if slot is not None else False,
        delay_minutes=slot.delay_minutes if slot is not None else 0,
    )


def _slot_for(db: Session, appointment: Appointment) -> TimeSlot | None:
    if appointment.time_slot_id is None:
        return None
    return db.get(TimeSlot, appointment.time_slot_id)


@router.post('/', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(
    data: BookAppointmentRequest,
    user: CurrentUser = Depends(require_patient),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        result = booking.book_appointment(
            db,
            booking.BookingRequest(
                staff_id=data.staff_id,
                slot_id=data.slot_id,
                appointment_date=data.appointment_date,
                patient_id=user.id,
                payment_reference=data.payment_reference,
                reason=data.reason,
                notes=data.notes,
            ),
        )
        return BookingResponse.model_validate(result)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/mine', response_model=list[AppointmentResponse])
def list_my_appointments(
    user: CurrentUser = Depends(require_patient),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointments = AppointmentStore(db).query(patient_id=user.id)
        slot_ids = {appointment.time_slot_id for appointment in appointments if appointment.time_slot_id is not None}
        slots = {
            slot.id: slot
            for slot in db.query(TimeSlot).filter(TimeSlot.id.in_(slot_ids)).all()
        } if slot_ids else {}

        now = datetime.now()
        return [
            build_appointment_response(appointment, slots.get(appointment.time_slot_id), now)
            for appointment in appointments
        ]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleRequest,
    user: CurrentUser = Depends(require_patient),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = booking.reschedule_appointment(db, appointment_id, data.new_slot_id, patient_id=user.id)
        return build_appointment_response(appointment, _slot_for(db, appointment))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: CancelRequest,
    user: CurrentUser = Depends(require_patient),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = booking.cancel_appointment(db, appointment_id, patient_id=user.id, reason=data.reason)
        return build_appointment_response(appointment, _slot_for(db, appointment))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: StatusUpdateRequest,
    user: CurrentUser = Depends(require_staff),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = AppointmentStore(db).get(appointment_id)
        if appointment.staff_id != user.id:
            raise AppointmentNotFound()

        appointment = booking.update_appointment_status(db, appointment_id, data.status, reason=data.reason)
        return build_appointment_response(appointment, _slot_for(db, appointment))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
