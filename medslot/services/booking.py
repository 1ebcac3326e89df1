"""Patient-facing booking, rescheduling and cancellation.

A booking takes its seat, inserts the appointment and claims the payment in
one transaction. Any failure rolls the whole booking back, so no seat or
payment is held by an appointment that was never written.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from medslot.core.errors import (
    AppointmentNotFound,
    InvalidStatusTransition,
    NotAuthenticated,
    PaymentNotVerified,
    SlotFull,
    SlotUnavailable,
)
from medslot.models.appointment import Appointment
from medslot.models.payment import Payment
from medslot.services import capacity_ledger
from medslot.services.appointment_status import (
    AppointmentStatus,
    ensure_transition,
    parse_status,
)
from medslot.services.stores import AppointmentStore, SlotStore, commit_or_fail, execute_or_fail

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingRequest:
    staff_id: int
    slot_id: int | None
    appointment_date: date
    patient_id: int | None
    payment_reference: str | None
    reason: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class BookingResult:
    appointment_id: int
    slot_id: int
    status: AppointmentStatus
    remaining_capacity: int


class PaymentVerifier(Protocol):
    """Interface for confirming a booking has been paid for.

    ``verify`` is an early check; ``claim`` runs inside the booking
    transaction and is the one that decides.
    """

    def verify(self, patient_id: int, reference: str) -> bool:
        ...

    def claim(self, patient_id: int, reference: str, appointment_id: int) -> bool:
        ...


class DatabasePaymentVerifier:
    """Accepts a completed payment of the patient's that no live booking holds."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def verify(self, patient_id: int, reference: str) -> bool:
        payment = self.db.scalar(
            select(Payment)
            .where(Payment.reference == reference)
            .execution_options(populate_existing=True)
        )
        if payment is None or payment.patient_id != patient_id or payment.status != 'completed':
            return False
        return payment.appointment_id is None

    def claim(self, patient_id: int, reference: str, appointment_id: int) -> bool:
        claimed = execute_or_fail(
            self.db,
            update(Payment)
            .where(
                Payment.reference == reference,
                Payment.patient_id == patient_id,
                Payment.status == 'completed',
                Payment.appointment_id.is_(None),
            )
            .values(appointment_id=appointment_id),
            f'claiming payment {reference}',
        )
        return claimed == 1


def release_payments(db: Session, appointment_ids: list[int]) -> None:
    """Free the payments held by these appointments; joins the caller's transaction."""
    if not appointment_ids:
        return

    execute_or_fail(
        db,
        update(Payment).where(Payment.appointment_id.in_(appointment_ids)).values(appointment_id=None),
        'releasing payments',
    )


def _owned_appointment(store: AppointmentStore, appointment_id: int, patient_id: int | None) -> Appointment:
    appointment = store.get(appointment_id)
    if patient_id is not None and appointment.patient_id != patient_id:
        raise AppointmentNotFound()
    return appointment


def book_appointment(
    db: Session,
    request: BookingRequest,
    payment_verifier: PaymentVerifier | None = None,
) -> BookingResult:
    if request.patient_id is None:
        raise NotAuthenticated()

    if request.slot_id is None:
        raise SlotUnavailable('Please select a time slot.')

    verifier = payment_verifier or DatabasePaymentVerifier(db)
    reference = (request.payment_reference or '').strip()
    if not reference or not verifier.verify(request.patient_id, reference):
        raise PaymentNotVerified()

    slot = SlotStore(db).get(request.slot_id, refresh=True)
    if slot.staff_id != request.staff_id or slot.slot_date != request.appointment_date:
        raise SlotUnavailable('The selected time slot does not belong to this doctor and date.')
    if not capacity_ledger.can_book(slot):
        if not slot.is_available:
            raise SlotUnavailable()
        raise SlotFull()

    # The seat stays uncommitted, and its row locked, until the appointment and payment are in place.
    slot = capacity_ledger.reserve(db, slot.id, commit=False)
    slot_id = slot.id

    appointment = Appointment(
        patient_id=request.patient_id,
        staff_id=slot.staff_id,
        time_slot_id=slot_id,
        appointment_date=slot.slot_date,
        appointment_time=slot.start_time,
        status=AppointmentStatus.SCHEDULED.value,
        reason=request.reason,
        notes=request.notes,
        payment_reference=reference,
    )

    try:
        appointment_id = AppointmentStore(db).insert(appointment, commit=False)
        if not verifier.claim(request.patient_id, reference, appointment_id):
            raise PaymentNotVerified()
        commit_or_fail(db, f'booking time slot {slot_id}')
    except Exception:
        db.rollback()
        logger.warning('Booking of slot %s for patient %s rolled back', slot_id, request.patient_id)
        raise

    logger.info('Patient %s booked slot %s as appointment %s', request.patient_id, slot_id, appointment_id)
    return BookingResult(
        appointment_id=appointment_id,
        slot_id=slot_id,
        status=AppointmentStatus.SCHEDULED,
        remaining_capacity=SlotStore(db).get(slot_id, refresh=True).remaining_capacity,
    )


def reschedule_appointment(
    db: Session,
    appointment_id: int,
    new_slot_id: int,
    patient_id: int | None = None,
) -> Appointment:
    """Move an appointment to another slot.

    The new seat is taken before the old one is given up, all in one
    transaction, so a full or disabled target leaves the original booking
    untouched.
    """
    store = AppointmentStore(db)
    appointment = _owned_appointment(store, appointment_id, patient_id)
    ensure_transition(appointment.status, AppointmentStatus.RESCHEDULED)

    old_slot_id = appointment.time_slot_id
    if old_slot_id == new_slot_id:
        raise SlotUnavailable('The appointment is already booked in this time slot.')

    new_slot = capacity_ledger.reserve(db, new_slot_id, commit=False)

    try:
        appointment = store.get(appointment_id)
        appointment.time_slot_id = new_slot.id
        appointment.staff_id = new_slot.staff_id
        appointment.appointment_date = new_slot.slot_date
        appointment.appointment_time = new_slot.start_time
        appointment.status = AppointmentStatus.RESCHEDULED.value
        if old_slot_id is not None:
            capacity_ledger.release(db, old_slot_id, commit=False)
        commit_or_fail(db, f'rescheduling appointment {appointment_id}')
    except Exception:
        db.rollback()
        logger.warning('Reschedule of appointment %s to slot %s rolled back', appointment_id, new_slot_id)
        raise

    db.refresh(appointment)
    logger.info('Appointment %s moved from slot %s to slot %s', appointment_id, old_slot_id, new_slot_id)
    return appointment


def cancel_appointment(
    db: Session,
    appointment_id: int,
    patient_id: int | None = None,
    reason: str | None = None,
) -> Appointment:
    store = AppointmentStore(db)
    appointment = _owned_appointment(store, appointment_id, patient_id)
    ensure_transition(appointment.status, AppointmentStatus.CANCELLED)

    appointment.status = AppointmentStatus.CANCELLED.value
    appointment.cancellation_reason = reason
    if appointment.time_slot_id is not None:
        capacity_ledger.release(db, appointment.time_slot_id, commit=False)
    release_payments(db, [appointment_id])
    commit_or_fail(db, f'cancelling appointment {appointment_id}')

    db.refresh(appointment)
    return appointment


def update_appointment_status(
    db: Session,
    appointment_id: int,
    status: str | AppointmentStatus,
    reason: str | None = None,
) -> Appointment:
    target = parse_status(status)

    if target is AppointmentStatus.CANCELLED:
        return cancel_appointment(db, appointment_id, reason=reason)
    if target is AppointmentStatus.RESCHEDULED:
        raise InvalidStatusTransition('Reschedule an appointment by choosing a new time slot.')

    store = AppointmentStore(db)
    appointment = store.get(appointment_id)
    ensure_transition(appointment.status, target)
    return store.update_status(appointment_id, target)
