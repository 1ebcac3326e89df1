"""Day-to-day adjustments staff make to their own slots."""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum

from sqlalchemy import case, update
from sqlalchemy.orm import Session

from medslot.core import config
from medslot.core.errors import (
    ConflictRequiresEmergencyCancellation,
    InvalidCancellationReason,
    InvalidDelay,
)
from medslot.models.time_slot import TimeSlot
from medslot.services import capacity_ledger
from medslot.services.appointment_status import AppointmentStatus
from medslot.services.booking import release_payments
from medslot.services.notifications import LoggingNotificationDispatcher, NotificationDispatcher, PatientNotice
from medslot.services.slot_generator import (
    GenerationReport,
    enable_weekdays,
    enable_weekend,
    generate_slots,
    iterate_days,
)
from medslot.services.stores import AppointmentStore, SlotStore, commit_or_fail, execute_or_fail

logger = logging.getLogger(__name__)


class CancellationReason(str, Enum):
    MEDICAL_EMERGENCY = 'medical_emergency'
    STAFF_ILLNESS = 'staff_illness'
    FAMILY_EMERGENCY = 'family_emergency'
    OTHER = 'other'

    @property
    def display_name(self) -> str:
        return {
            CancellationReason.MEDICAL_EMERGENCY: 'Medical Emergency',
            CancellationReason.STAFF_ILLNESS: 'Doctor Illness',
            CancellationReason.FAMILY_EMERGENCY: 'Family Emergency',
            CancellationReason.OTHER: 'Other Reason',
        }[self]


@dataclass
class EmergencyCancellationResult:
    slot: TimeSlot
    reason: str
    cancelled_appointment_ids: list[int] = field(default_factory=list)


@dataclass
class CapacityChange:
    slot: TimeSlot
    below_current_bookings: bool


@dataclass
class DayAvailabilityResult:
    updated_slot_ids: list[int] = field(default_factory=list)
    blocked_slot_ids: list[int] = field(default_factory=list)


@dataclass
class BulkEnableResult:
    generation: GenerationReport
    enabled_slot_ids: list[int] = field(default_factory=list)
    blocked_slot_ids: list[int] = field(default_factory=list)


def describe_cancellation(reason: CancellationReason | str, details: str | None = None) -> str:
    try:
        reason = CancellationReason(reason)
    except ValueError as exc:
        raise InvalidCancellationReason(f'Unknown cancellation reason: {reason!r}.') from exc

    details = (details or '').strip()
    if reason is CancellationReason.OTHER:
        if not details:
            raise InvalidCancellationReason('Please describe the reason for cancelling.')
        return details

    if details:
        return f'{reason.display_name}: {details}'
    return reason.display_name


def toggle_availability(db: Session, slot_id: int, is_available: bool) -> TimeSlot:
    """Open or close a slot.

    A slot holding bookings cannot be closed here; that goes through
    ``emergency_cancel_slot`` so its patients are cancelled with it.
    """
    store = SlotStore(db)
    slot = store.get(slot_id, refresh=True)

    if bool(slot.is_available) == is_available:
        return slot

    if is_available:
        return store.update_fields(slot_id, is_available=True)

    updated = 0
    if capacity_ledger.can_disable(slot):
        updated = execute_or_fail(
            db,
            update(TimeSlot)
            .where(TimeSlot.id == slot_id, TimeSlot.current_bookings == 0)
            .values(is_available=False),
            f'disabling time slot {slot_id}',
        )

    if updated != 1:
        db.rollback()
        affected = AppointmentStore(db).live_for_slot(slot_id)
        raise ConflictRequiresEmergencyCancellation([appointment.id for appointment in affected])

    commit_or_fail(db, f'disabling time slot {slot_id}')
    return store.get(slot_id, refresh=True)


def emergency_cancel_slot(
    db: Session,
    slot_id: int,
    reason: CancellationReason | str,
    details: str | None = None,
    notifier: NotificationDispatcher | None = None,
) -> EmergencyCancellationResult:
    """Close a booked slot and cancel every live appointment in it, in one commit."""
    recorded_reason = describe_cancellation(reason, details)
    SlotStore(db).get(slot_id)

    # Close the slot before collecting appointments so no new seat is taken meanwhile.
    execute_or_fail(
        db,
        update(TimeSlot).where(TimeSlot.id == slot_id).values(is_available=False),
        f'disabling time slot {slot_id}',
    )

    affected = AppointmentStore(db).live_for_slot(slot_id)
    for appointment in affected:
        appointment.status = AppointmentStatus.CANCELLED.value
        appointment.cancellation_reason = recorded_reason

    remaining = TimeSlot.current_bookings - len(affected)
    execute_or_fail(
        db,
        update(TimeSlot).where(TimeSlot.id == slot_id).values(current_bookings=case((remaining > 0, remaining), else_=0)),
        f'releasing time slot {slot_id}',
    )
    cancelled_ids = [appointment.id for appointment in affected]
    release_payments(db, cancelled_ids)

    commit_or_fail(db, f'emergency cancelling time slot {slot_id}')

    logger.info(
        'Emergency cancellation of slot %s (%s): %s appointments cancelled',
        slot_id,
        recorded_reason,
        len(cancelled_ids),
    )

    (notifier or LoggingNotificationDispatcher()).dispatch([
        PatientNotice(
            patient_id=appointment.patient_id,
            appointment_id=appointment.id,
            kind='cancelled',
            message=f'Your appointment on {appointment.appointment_date} was cancelled: {recorded_reason}.',
        )
        for appointment in affected
    ])

    return EmergencyCancellationResult(
        slot=SlotStore(db).get(slot_id, refresh=True),
        reason=recorded_reason,
        cancelled_appointment_ids=cancelled_ids,
    )


def _notify_delay(db: Session, slot: TimeSlot, notifier: NotificationDispatcher | None) -> None:
    (notifier or LoggingNotificationDispatcher()).dispatch([
        PatientNotice(
            patient_id=appointment.patient_id,
            appointment_id=appointment.id,
            kind='running_late',
            message=f'Your doctor is running {slot.delay_minutes} minutes late.',
        )
        for appointment in AppointmentStore(db).live_for_slot(slot.id)
    ])


def mark_running_late(
    db: Session,
    slot_id: int,
    delay_minutes: int,
    notifier: NotificationDispatcher | None = None,
) -> TimeSlot:
    quick_pick = isinstance(delay_minutes, int) and not isinstance(delay_minutes, bool)
    if not quick_pick or delay_minutes not in config.RUNNING_LATE_QUICK_PICKS:
        picks = ', '.join(str(minutes) for minutes in config.RUNNING_LATE_QUICK_PICKS)
        raise InvalidDelay(f'Delay must be one of {picks} minutes.')

    slot = SlotStore(db).update_fields(slot_id, is_running_late=True, delay_minutes=delay_minutes)
    _notify_delay(db, slot, notifier)
    return slot


def adjust_delay(
    db: Session,
    slot_id: int,
    by_minutes: int,
    notifier: NotificationDispatcher | None = None,
) -> TimeSlot:
    """Shift a slot's delay by whole steps; reaching zero clears running late."""
    step = config.DELAY_STEP_MINUTES
    if isinstance(by_minutes, bool) or not isinstance(by_minutes, int) or by_minutes == 0 or by_minutes % step:
        raise InvalidDelay(f'Delay changes must be a non-zero multiple of {step} minutes.')

    new_delay = TimeSlot.delay_minutes + by_minutes
    slot = SlotStore(db).update_fields(
        slot_id,
        delay_minutes=case((new_delay > 0, new_delay), else_=0),
        is_running_late=new_delay > 0,
    )

    if slot.is_running_late:
        _notify_delay(db, slot, notifier)
    return slot


def clear_running_late(db: Session, slot_id: int) -> TimeSlot:
    return SlotStore(db).update_fields(slot_id, is_running_late=False, delay_minutes=0)


def resize_slot_capacity(db: Session, slot_id: int, new_capacity: int) -> CapacityChange:
    slot = capacity_ledger.resize_capacity(db, slot_id, new_capacity)
    below = slot.current_bookings > slot.max_capacity
    if below:
        logger.warning(
            'Slot %s capacity set to %s below its %s bookings; no new bookings until it drains',
            slot_id,
            slot.max_capacity,
            slot.current_bookings,
        )
    return CapacityChange(slot=slot, below_current_bookings=below)


def _apply_availability(db: Session, slots: list[TimeSlot], is_available: bool) -> tuple[list[int], list[int]]:
    updated, blocked = [], []
    for slot in slots:
        try:
            toggle_availability(db, slot.id, is_available)
        except ConflictRequiresEmergencyCancellation:
            blocked.append(slot.id)
            continue
        updated.append(slot.id)
    return updated, blocked


def set_day_availability(db: Session, staff_id: int, day: date, is_available: bool) -> DayAvailabilityResult:
    """Toggle every slot of a day; booked slots stay open and are reported."""
    slots = SlotStore(db).query(staff_id, date_range=(day, day))
    updated, blocked = _apply_availability(db, slots, is_available)
    return DayAvailabilityResult(updated_slot_ids=updated, blocked_slot_ids=blocked)


def bulk_enable(
    db: Session,
    staff_id: int,
    start_date: date,
    weeks: int,
    weekdays_only: bool = False,
    weekend_only: bool = False,
    capacity: int | None = None,
) -> BulkEnableResult:
    """Make sure the slots exist over ``weeks`` weeks, then open them."""
    if weeks <= 0:
        raise ValueError('weeks must be positive.')

    if weekdays_only and weekend_only:
        raise ValueError('weekdays_only and weekend_only are mutually exclusive.')

    end_date = start_date + timedelta(days=weeks * 7 - 1)
    if weekdays_only:
        report = enable_weekdays(db, staff_id, start_date, weeks, capacity=capacity)
    elif weekend_only:
        report = enable_weekend(db, staff_id, start_date, weeks, capacity=capacity)
    else:
        report = generate_slots(db, staff_id, start_date, end_date, capacity=capacity)

    days = set(iterate_days(start_date, end_date, weekdays_only=weekdays_only, weekend_only=weekend_only))
    slots = [
        slot
        for slot in SlotStore(db).query(staff_id, date_range=(start_date, end_date))
        if slot.slot_date in days
    ]

    enabled, blocked = _apply_availability(db, slots, True)
    return BulkEnableResult(generation=report, enabled_slot_ids=enabled, blocked_slot_ids=blocked)
