"""Booking counters for time slots.

Every increment is a single guarded ``UPDATE`` so two sessions racing for the
last seat cannot both win; a caller's snapshot of the row is never trusted.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.orm import Session

from medslot.core.errors import InvalidCapacity, SlotFull, SlotUnavailable
from medslot.models.time_slot import TimeSlot
from medslot.services.stores import AppointmentStore, SlotStore, commit_or_fail, execute_or_fail

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CounterDrift:
    slot_id: int
    recorded: int
    actual: int


def can_book(slot: TimeSlot) -> bool:
    return bool(slot.is_available) and slot.current_bookings < slot.max_capacity


def can_disable(slot: TimeSlot) -> bool:
    return slot.current_bookings <= 0


def reserve(db: Session, slot_id: int, commit: bool = True) -> TimeSlot:
    """Take one seat in a slot, or raise if it is disabled or full at this instant.

    With ``commit=False`` the increment stays in the caller's transaction and
    holds the slot row until the caller commits or rolls back.
    """
    updated = execute_or_fail(
        db,
        update(TimeSlot)
        .where(
            TimeSlot.id == slot_id,
            TimeSlot.is_available.is_(True),
            TimeSlot.current_bookings < TimeSlot.max_capacity,
        )
        .values(current_bookings=TimeSlot.current_bookings + 1),
        f'reserving time slot {slot_id}',
    )

    if updated != 1:
        db.rollback()
        slot = SlotStore(db).get(slot_id, refresh=True)
        if not slot.is_available:
            raise SlotUnavailable()
        raise SlotFull()

    if commit:
        commit_or_fail(db, f'reserving time slot {slot_id}')
    return SlotStore(db).get(slot_id, refresh=True)


def release(db: Session, slot_id: int, commit: bool = True) -> TimeSlot:
    """Give back one seat; the counter never drops below zero.

    With ``commit=False`` the decrement joins the caller's transaction, so a
    status change and its release land together.
    """
    updated = execute_or_fail(
        db,
        update(TimeSlot)
        .where(TimeSlot.id == slot_id, TimeSlot.current_bookings > 0)
        .values(current_bookings=TimeSlot.current_bookings - 1),
        f'releasing time slot {slot_id}',
    )

    if updated != 1:
        logger.warning('Release requested for slot %s with no recorded bookings', slot_id)
    elif commit:
        commit_or_fail(db, f'releasing time slot {slot_id}')

    return SlotStore(db).get(slot_id, refresh=True)


def resize_capacity(db: Session, slot_id: int, new_capacity: int) -> TimeSlot:
    """Set a new ceiling.

    Shrinking below the current bookings is allowed: existing bookings stay,
    and ``reserve`` refuses new ones until the count falls under the ceiling.
    """
    if isinstance(new_capacity, bool) or not isinstance(new_capacity, int) or new_capacity <= 0:
        raise InvalidCapacity()

    return SlotStore(db).update_fields(slot_id, max_capacity=new_capacity)


def recount_bookings(db: Session, slot_id: int) -> CounterDrift:
    """Rewrite ``current_bookings`` from the appointments that hold a seat."""
    slot = SlotStore(db).get(slot_id, refresh=True)
    actual = AppointmentStore(db).count_active_for_slot(slot_id)
    drift = CounterDrift(slot_id=slot_id, recorded=slot.current_bookings, actual=actual)

    if actual > slot.max_capacity:
        logger.warning(
            'Slot %s holds %s active appointments against a capacity of %s',
            slot_id,
            actual,
            slot.max_capacity,
        )

    if drift.recorded != drift.actual:
        logger.warning('Slot %s counter drifted: recorded=%s actual=%s', slot_id, drift.recorded, drift.actual)
        SlotStore(db).update_fields(slot_id, current_bookings=actual)

    return drift


def reconcile_staff_slots(db: Session, staff_id: int) -> list[CounterDrift]:
    drifted = []
    for slot in SlotStore(db).query(staff_id):
        drift = recount_bookings(db, slot.id)
        if drift.recorded != drift.actual:
            drifted.append(drift)
    return drifted
