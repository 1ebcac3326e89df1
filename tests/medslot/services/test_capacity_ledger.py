from datetime import date, time

import pytest

from medslot.core.errors import InvalidCapacity, SlotFull, SlotNotFound, SlotUnavailable
from medslot.models.staff import Staff
from medslot.models.time_slot import TimeSlot
from medslot.services import capacity_ledger


def test_reserve_takes_one_seat(db, make_staff, make_slot) -> None:
    slot = make_slot(make_staff().id)

    reserved = capacity_ledger.reserve(db, slot.id)

    assert reserved.current_bookings == 1
    assert reserved.remaining_capacity == 4


def test_reserve_rejects_full_slot_without_touching_counter(db, make_staff, make_slot) -> None:
    slot = make_slot(make_staff().id, current_bookings=5, max_capacity=5)

    assert capacity_ledger.can_book(slot) is False
    with pytest.raises(SlotFull):
        capacity_ledger.reserve(db, slot.id)

    db.refresh(slot)
    assert slot.current_bookings == 5


def test_reserve_rejects_disabled_slot(db, make_staff, make_slot) -> None:
    slot = make_slot(make_staff().id, is_available=False)

    with pytest.raises(SlotUnavailable):
        capacity_ledger.reserve(db, slot.id)

    db.refresh(slot)
    assert slot.current_bookings == 0


def test_reserve_unknown_slot_raises_not_found(db) -> None:
    with pytest.raises(SlotNotFound):
        capacity_ledger.reserve(db, 404)


def test_release_gives_back_one_seat(db, make_staff, make_slot) -> None:
    slot = make_slot(make_staff().id, current_bookings=2)

    released = capacity_ledger.release(db, slot.id)

    assert released.current_bookings == 1


def test_release_never_goes_below_zero(db, make_staff, make_slot) -> None:
    slot = make_slot(make_staff().id, current_bookings=0)

    released = capacity_ledger.release(db, slot.id)

    assert released.current_bookings == 0


@pytest.mark.parametrize('new_capacity', [0, -1, True, 2.5, None])
def test_resize_capacity_rejects_non_positive_integers(db, make_staff, make_slot, new_capacity) -> None:
    slot = make_slot(make_staff().id)

    with pytest.raises(InvalidCapacity):
        capacity_ledger.resize_capacity(db, slot.id, new_capacity)

    db.refresh(slot)
    assert slot.max_capacity == 5


def test_resize_below_bookings_blocks_new_reservations_until_drained(db, make_staff, make_slot) -> None:
    slot = make_slot(make_staff().id, current_bookings=3)

    resized = capacity_ledger.resize_capacity(db, slot.id, 2)
    assert resized.max_capacity == 2
    assert resized.current_bookings == 3

    with pytest.raises(SlotFull):
        capacity_ledger.reserve(db, slot.id)

    capacity_ledger.release(db, slot.id)
    capacity_ledger.release(db, slot.id)
    assert capacity_ledger.reserve(db, slot.id).current_bookings == 2


def test_can_disable_only_when_empty(make_staff, make_slot) -> None:
    staff_id = make_staff().id

    assert capacity_ledger.can_disable(make_slot(staff_id, start_hour=9)) is True
    assert capacity_ledger.can_disable(make_slot(staff_id, start_hour=10, current_bookings=1)) is False


def test_recount_bookings_rewrites_drifted_counter(db, make_staff, make_patient, make_slot, make_appointment) -> None:
    patient = make_patient()
    slot = make_slot(make_staff().id, current_bookings=4)
    make_appointment(slot, patient.id, status='scheduled')
    make_appointment(slot, patient.id, status='completed')
    make_appointment(slot, patient.id, status='cancelled')

    drift = capacity_ledger.recount_bookings(db, slot.id)

    assert drift == capacity_ledger.CounterDrift(slot_id=slot.id, recorded=4, actual=2)
    db.refresh(slot)
    assert slot.current_bookings == 2


def test_reconcile_staff_slots_reports_only_drifted_slots(db, make_staff, make_patient, make_slot, make_appointment) -> None:
    staff_id = make_staff().id
    patient = make_patient()
    in_sync = make_slot(staff_id, start_hour=9, current_bookings=1)
    drifted = make_slot(staff_id, start_hour=10, current_bookings=3)
    make_appointment(in_sync, patient.id)

    report = capacity_ledger.reconcile_staff_slots(db, staff_id)

    assert [drift.slot_id for drift in report] == [drifted.id]
    db.refresh(drifted)
    assert drifted.current_bookings == 0


def test_racing_sessions_cannot_both_take_the_last_seat(file_sessions) -> None:
    first, second = file_sessions
    staff = Staff(full_name='Dr. A', email='a@clinic.org', slot_capacity=5, is_active=True)
    first.add(staff)
    first.commit()
    slot = TimeSlot(
        staff_id=staff.id,
        slot_date=date(2026, 1, 5),
        start_time=time(10, 0),
        end_time=time(11, 0),
        is_available=True,
        current_bookings=4,
        max_capacity=5,
        is_running_late=False,
        delay_minutes=0,
    )
    first.add(slot)
    first.commit()
    slot_id = slot.id

    # Both sessions look at the slot while one seat is still free.
    first_view = first.get(TimeSlot, slot_id)
    second_view = second.get(TimeSlot, slot_id)
    assert capacity_ledger.can_book(first_view)
    assert capacity_ledger.can_book(second_view)

    winner = capacity_ledger.reserve(first, slot_id)
    assert winner.current_bookings == 5

    with pytest.raises(SlotFull):
        capacity_ledger.reserve(second, slot_id)

    assert second.get(TimeSlot, slot_id, populate_existing=True).current_bookings == 5
