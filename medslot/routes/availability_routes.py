from datetime import date, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ValidationInfo, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medslot.auth.dependencies import CurrentUser, get_current_user_id, require_staff
from medslot.core.errors import SchedulingError, SlotNotFound, to_http_exception
from medslot.database import get_db
from medslot.models.time_slot import TimeSlot
from medslot.routes.common import database_unavailable, ensure_database_ready
from medslot.services import operations, slot_generator
from medslot.services.operations import CancellationReason
from medslot.services.stores import SlotStore

router = APIRouter(tags=['availability'])

DEFAULT_ENABLE_WEEKS = 2
MAX_ENABLE_WEEKS = 12
MAX_GENERATION_DAYS = MAX_ENABLE_WEEKS * 7
MAX_CANCELLATION_DETAILS_LENGTH = 500


class TimeSlotResponse(BaseModel):
    id: int
    staff_id: int
    slot_date: date
    start_time: time
    end_time: time
    is_available: bool
    current_bookings: int
    max_capacity: int
    remaining_capacity: int
    is_running_late: bool
    delay_minutes: int
    status: str

    class Config:
        from_attributes = True


class GenerationReportResponse(BaseModel):
    days_created: list[date]
    days_skipped: list[date]
    failed_days: list[date]
    slots_created: int

    class Config:
        from_attributes = True


class BulkEnableResponse(BaseModel):
    generation: GenerationReportResponse
    enabled_slot_ids: list[int]
    blocked_slot_ids: list[int]

    class Config:
        from_attributes = True


class DayAvailabilityResponse(BaseModel):
    updated_slot_ids: list[int]
    blocked_slot_ids: list[int]

    class Config:
        from_attributes = True


class EmergencyCancellationResponse(BaseModel):
    slot: TimeSlotResponse
    reason: str
    cancelled_appointment_ids: list[int]

    class Config:
        from_attributes = True


class CapacityChangeResponse(BaseModel):
    slot: TimeSlotResponse
    below_current_bookings: bool

    class Config:
        from_attributes = True


class GenerateSlotsRequest(BaseModel):
    start_date: date
    end_date: date
    capacity: int | None = None
    weekdays_only: bool = False
    weekend_only: bool = False

    @field_validator('end_date')
    @classmethod
    def validate_end_date(cls, value: date, info: ValidationInfo) -> date:
        start_date = info.data.get('start_date')
        if start_date is None:
            return value
        if value < start_date:
            raise ValueError('End date must be on or after the start date.')
        if (value - start_date).days + 1 > MAX_GENERATION_DAYS:
            raise ValueError(f'Generate at most {MAX_GENERATION_DAYS} days at a time.')
        return value

    @field_validator('weekend_only')
    @classmethod
    def validate_day_filter(cls, value: bool, info: ValidationInfo) -> bool:
        if value and info.data.get('weekdays_only'):
            raise ValueError('Choose weekdays or weekend, not both.')
        return value


class EnableWeeksRequest(BaseModel):
    start_date: date | None = None
    weeks: int = DEFAULT_ENABLE_WEEKS
    capacity: int | None = None

    @field_validator('weeks')
    @classmethod
    def validate_weeks(cls, value: int) -> int:
        if value < 1 or value > MAX_ENABLE_WEEKS:
            raise ValueError(f'Weeks must be between 1 and {MAX_ENABLE_WEEKS}.')
        return value


class AvailabilityUpdateRequest(BaseModel):
    is_available: bool


class EmergencyCancelRequest(BaseModel):
    reason: CancellationReason
    details: str | None = None

    @field_validator('details')
    @classmethod
    def validate_details(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_CANCELLATION_DETAILS_LENGTH:
            raise ValueError(f'Details must be {MAX_CANCELLATION_DETAILS_LENGTH} characters or fewer.')

        return normalized


class RunningLateRequest(BaseModel):
    delay_minutes: int


class DelayAdjustRequest(BaseModel):
    by_minutes: int

    @field_validator('by_minutes')
    @classmethod
    def validate_by_minutes(cls, value: int) -> int:
        if value == 0:
            raise ValueError('Delay adjustment cannot be zero.')
        return value


class CapacityUpdateRequest(BaseModel):
    max_capacity: int


def get_owned_slot(db: Session, slot_id: int, user: CurrentUser) -> TimeSlot:
    slot = SlotStore(db).get(slot_id, refresh=True)
    if slot.staff_id != user.id:
        raise SlotNotFound()
    return slot


@router.get('/slots', response_model=list[TimeSlotResponse])
def list_my_slots(
    slot_date: date | None = Query(default=None),
    user: CurrentUser = Depends(require_staff),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        slot_generator.ensure_slot_horizon(db, user.id)
        day = slot_date or date.today()
        return SlotStore(db).query(user.id, date_range=(day, day))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/slots/generate', response_model=GenerationReportResponse, status_code=status.HTTP_201_CREATED)
def generate_slots(
    data: GenerateSlotsRequest,
    user: CurrentUser = Depends(require_staff),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        report = slot_generator.generate_slots(
            db,
            user.id,
            data.start_date,
            data.end_date,
            capacity=data.capacity,
            weekdays_only=data.weekdays_only,
            weekend_only=data.weekend_only,
        )
        return GenerationReportResponse.model_validate(report)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


def _bulk_enable(db: Session, user: CurrentUser, data: EnableWeeksRequest, weekdays_only: bool, weekend_only: bool):
    ensure_database_ready()

    try:
        result = operations.bulk_enable(
            db,
            user.id,
            data.start_date or date.today(),
            data.weeks,
            weekdays_only=weekdays_only,
            weekend_only=weekend_only,
            capacity=data.capacity,
        )
        return BulkEnableResponse.model_validate(result)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/slots/enable-weekdays', response_model=BulkEnableResponse)
def enable_weekdays(
    data: EnableWeeksRequest,
    user: CurrentUser = Depends(require_staff),
    db: Session = Depends(get_db),
):
    return _bulk_enable(db, user, data, weekdays_only=True, weekend_only=False)


@router.post('/slots/enable-weekend', response_model=BulkEnableResponse)
def enable_weekend(
    data: EnableWeeksRequest,
    user: CurrentUser = Depends(require_staff),
    db: Session = Depends(get_db),
):
    return _bulk_enable(db, user, data, weekdays_only=False, weekend_only=True)


@router.patch('/slots/{slot_id}/availability', response_model=TimeSlotResponse)
def update_slot_availability(
    slot_id: int,
    data: AvailabilityUpdateRequest,
    user: CurrentUser = Depends(require_staff),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        get_owned_slot(db, slot_id, user)
        return operations.toggle_availability(db, slot_id, data.is_available)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/slots/{slot_id}/emergency-cancel', response_model=EmergencyCancellationResponse)
def emergency_cancel(
    slot_id: int,
    data: EmergencyCancelRequest,
    user: CurrentUser = Depends(require_staff),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        get_owned_slot(db, slot_id, user)
        result = operations.emergency_cancel_slot(db, slot_id, data.reason, details=data.details)
        return EmergencyCancellationResponse.model_validate(result)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/slots/{slot_id}/running-late', response_model=TimeSlotResponse)
def mark_running_late(
    slot_id: int,
    data: RunningLateRequest,
    user: CurrentUser = Depends(require_staff),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        get_owned_slot(db, slot_id, user)
        return operations.mark_running_late(db, slot_id, data.delay_minutes)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/slots/{slot_id}/delay', response_model=TimeSlotResponse)
def adjust_delay(
    slot_id: int,
    data: DelayAdjustRequest,
    user: CurrentUser = Depends(require_staff),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        get_owned_slot(db, slot_id, user)
        return operations.adjust_delay(db, slot_id, data.by_minutes)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/slots/{slot_id}/running-late', response_model=TimeSlotResponse)
def clear_running_late(
    slot_id: int,
    user: CurrentUser = Depends(require_staff),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        get_owned_slot(db, slot_id, user)
        return operations.clear_running_late(db, slot_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.patch('/slots/{slot_id}/capacity', response_model=CapacityChangeResponse)
def update_slot_capacity(
    slot_id: int,
    data: CapacityUpdateRequest,
    user: CurrentUser = Depends(require_staff),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        get_owned_slot(db, slot_id, user)
        change = operations.resize_slot_capacity(db, slot_id, data.max_capacity)
        return CapacityChangeResponse.model_validate(change)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/days/{slot_date}/availability', response_model=DayAvailabilityResponse)
def update_day_availability(
    slot_date: date,
    data: AvailabilityUpdateRequest,
    user: CurrentUser = Depends(require_staff),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        result = operations.set_day_availability(db, user.id, slot_date, data.is_available)
        return DayAvailabilityResponse.model_validate(result)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/doctors/{staff_id}/slots', response_model=list[TimeSlotResponse])
def list_bookable_slots(
    staff_id: int,
    slot_date: date = Query(...),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    del user_id
    if slot_date < date.today():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Choose today or a future date.',
        )

    ensure_database_ready()

    try:
        return SlotStore(db).query(staff_id, date_range=(slot_date, slot_date), available_only=True)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
