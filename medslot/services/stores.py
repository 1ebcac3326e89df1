"""Data-access contracts for time slots and appointments.

Each mutating call is one short round trip: it flushes, commits and, on a
database error, rolls back and raises ``PersistenceFailure``. Calls taking
``commit=False`` stay in the caller's transaction instead.
"""

import logging
from datetime import date, time

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medslot.core.errors import AppointmentNotFound, PersistenceFailure, SlotNotFound
from medslot.models.appointment import Appointment
from medslot.models.time_slot import TimeSlot
from medslot.services.appointment_status import ACTIVE_STATUSES, LIVE_STATUSES, AppointmentStatus

logger = logging.getLogger(__name__)

_ACTIVE_STATUS_VALUES = sorted(status.value for status in ACTIVE_STATUSES)
_LIVE_STATUS_VALUES = sorted(status.value for status in LIVE_STATUSES)


def commit_or_fail(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Persistence failure while %s', action)
        raise PersistenceFailure() from exc


def flush_or_fail(db: Session, action: str) -> None:
    try:
        db.flush()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Persistence failure while %s', action)
        raise PersistenceFailure() from exc


def execute_or_fail(db: Session, statement, action: str) -> int:
    """Run a bulk UPDATE without committing and return the matched row count."""
    try:
        result = db.execute(statement.execution_options(synchronize_session=False))
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Persistence failure while %s', action)
        raise PersistenceFailure() from exc
    return result.rowcount


class SlotStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def insert(self, slots: list[TimeSlot]) -> list[TimeSlot]:
        self.db.add_all(slots)
        commit_or_fail(self.db, 'inserting time slots')
        return slots

    def get(self, slot_id: int, *, refresh: bool = False) -> TimeSlot:
        slot = self.db.get(TimeSlot, slot_id, populate_existing=refresh)
        if slot is None:
            raise SlotNotFound()
        return slot

    def query(
        self,
        staff_id: int,
        date_range: tuple[date, date] | None = None,
        available_only: bool = False,
    ) -> list[TimeSlot]:
        statement = select(TimeSlot).where(TimeSlot.staff_id == staff_id)

        if date_range is not None:
            start_date, end_date = date_range
            statement = statement.where(TimeSlot.slot_date >= start_date, TimeSlot.slot_date <= end_date)

        if available_only:
            statement = statement.where(
                TimeSlot.is_available.is_(True),
                TimeSlot.current_bookings < TimeSlot.max_capacity,
            )

        statement = statement.order_by(TimeSlot.slot_date.asc(), TimeSlot.start_time.asc(), TimeSlot.id.asc())
        return list(self.db.scalars(statement).all())

    def update_fields(self, slot_id: int, **fields) -> TimeSlot:
        updated = execute_or_fail(
            self.db,
            update(TimeSlot).where(TimeSlot.id == slot_id).values(**fields),
            f'updating time slot {slot_id}',
        )
        if updated == 0:
            self.db.rollback()
            raise SlotNotFound()

        commit_or_fail(self.db, f'updating time slot {slot_id}')
        return self.get(slot_id, refresh=True)

    def open_slots(self, from_date: date, staff_id: int | None = None) -> list[TimeSlot]:
        """Bookable slots on or after ``from_date``, for one doctor or all of them."""
        statement = select(TimeSlot).where(
            TimeSlot.slot_date >= from_date,
            TimeSlot.is_available.is_(True),
            TimeSlot.current_bookings < TimeSlot.max_capacity,
        )
        if staff_id is not None:
            statement = statement.where(TimeSlot.staff_id == staff_id)

        statement = statement.order_by(TimeSlot.slot_date.asc(), TimeSlot.start_time.asc(), TimeSlot.id.asc())
        return list(self.db.scalars(statement).all())

    def latest_slot_date(self, staff_id: int) -> date | None:
        return self.db.scalar(select(func.max(TimeSlot.slot_date)).where(TimeSlot.staff_id == staff_id))

    def existing_start_times(self, staff_id: int, day: date) -> set[time]:
        rows = self.db.scalars(
            select(TimeSlot.start_time).where(TimeSlot.staff_id == staff_id, TimeSlot.slot_date == day)
        ).all()
        return set(rows)


class AppointmentStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def insert(self, appointment: Appointment, commit: bool = True) -> int:
        self.db.add(appointment)
        if not commit:
            flush_or_fail(self.db, 'inserting an appointment')
            return appointment.id

        commit_or_fail(self.db, 'inserting an appointment')
        self.db.refresh(appointment)
        return appointment.id

    def get(self, appointment_id: int) -> Appointment:
        appointment = self.db.get(Appointment, appointment_id)
        if appointment is None:
            raise AppointmentNotFound()
        return appointment

    def update_status(self, appointment_id: int, status: AppointmentStatus, **fields) -> Appointment:
        appointment = self.get(appointment_id)
        appointment.status = status.value
        for name, value in fields.items():
            setattr(appointment, name, value)

        commit_or_fail(self.db, f'updating appointment {appointment_id}')
        self.db.refresh(appointment)
        return appointment

    def query(
        self,
        *,
        patient_id: int | None = None,
        staff_id: int | None = None,
        time_slot_id: int | None = None,
        statuses: list[str] | None = None,
        date_range: tuple[date, date] | None = None,
    ) -> list[Appointment]:
        statement = select(Appointment)

        if patient_id is not None:
            statement = statement.where(Appointment.patient_id == patient_id)
        if staff_id is not None:
            statement = statement.where(Appointment.staff_id == staff_id)
        if time_slot_id is not None:
            statement = statement.where(Appointment.time_slot_id == time_slot_id)
        if statuses is not None:
            statement = statement.where(Appointment.status.in_(statuses))
        if date_range is not None:
            start_date, end_date = date_range
            statement = statement.where(
                Appointment.appointment_date >= start_date,
                Appointment.appointment_date <= end_date,
            )

        statement = statement.order_by(
            Appointment.appointment_date.asc(),
            Appointment.appointment_time.asc(),
            Appointment.id.asc(),
        )
        return list(self.db.scalars(statement).all())

    def live_for_slot(self, slot_id: int) -> list[Appointment]:
        return self.query(time_slot_id=slot_id, statuses=_LIVE_STATUS_VALUES)

    def count_active_for_slot(self, slot_id: int) -> int:
        return self.db.scalar(
            select(func.count(Appointment.id)).where(
                Appointment.time_slot_id == slot_id,
                Appointment.status.in_(_ACTIVE_STATUS_VALUES),
            )
        ) or 0
