from datetime import date, timedelta

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from medslot.auth.dependencies import CurrentUser
from medslot.routes.availability_routes import (
    AvailabilityUpdateRequest,
    CapacityUpdateRequest,
    DelayAdjustRequest,
    EmergencyCancelRequest,
    EnableWeeksRequest,
    GenerateSlotsRequest,
    RunningLateRequest,
    adjust_delay,
    emergency_cancel,
    generate_slots,
    list_bookable_slots,
    list_my_slots,
    mark_running_late,
    update_day_availability,
    update_slot_availability,
    update_slot_capacity,
)


@pytest.fixture(autouse=True)
def database_ready(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('medslot.routes.availability_routes.ensure_database_ready', lambda: None)


def _staff_user(staff) -> CurrentUser:
    return CurrentUser(id=staff.id, email=staff.email, role='staff')


def test_generate_slots_request_rejects_reversed_range() -> None:
    with pytest.raises(ValidationError):
        GenerateSlotsRequest(start_date=date(2026, 1, 5), end_date=date(2026, 1, 4))


def test_generate_slots_request_rejects_both_day_filters() -> None:
    with pytest.raises(ValidationError):
        GenerateSlotsRequest(
            start_date=date(2026, 1, 5),
            end_date=date(2026, 1, 9),
            weekdays_only=True,
            weekend_only=True,
        )


def test_generate_slots_request_caps_the_range() -> None:
    GenerateSlotsRequest(start_date=date(2026, 1, 5), end_date=date(2026, 1, 5) + timedelta(days=83))

    with pytest.raises(ValidationError):
        GenerateSlotsRequest(start_date=date(2026, 1, 5), end_date=date(2026, 1, 5) + timedelta(days=84))
    with pytest.raises(ValidationError):
        GenerateSlotsRequest(start_date=date(2026, 1, 1), end_date=date(9999, 12, 31))


@pytest.mark.parametrize('weeks', [0, 13])
def test_enable_weeks_request_bounds_weeks(weeks: int) -> None:
    with pytest.raises(ValidationError):
        EnableWeeksRequest(weeks=weeks)


def test_delay_adjust_request_rejects_zero() -> None:
    with pytest.raises(ValidationError):
        DelayAdjustRequest(by_minutes=0)


def test_emergency_cancel_request_normalizes_details() -> None:
    request = EmergencyCancelRequest(reason='other', details='  Clinic flooded  ')

    assert request.details == 'Clinic flooded'


def test_generate_slots_returns_report(db, make_staff) -> None:
    staff = make_staff()

    report = generate_slots(
        data=GenerateSlotsRequest(start_date=date(2026, 1, 1), end_date=date(2026, 1, 5), weekdays_only=True),
        user=_staff_user(staff),
        db=db,
    )

    assert report.slots_created == 27
    assert report.days_created == [date(2026, 1, 1), date(2026, 1, 2), date(2026, 1, 5)]


def test_generate_slots_maps_invalid_capacity_to_400(db, make_staff) -> None:
    staff = make_staff()

    with pytest.raises(HTTPException) as exception_info:
        generate_slots(
            data=GenerateSlotsRequest(start_date=date(2026, 1, 5), end_date=date(2026, 1, 5), capacity=0),
            user=_staff_user(staff),
            db=db,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail['code'] == 'invalid_capacity'


def test_list_my_slots_replenishes_and_filters_by_date(db, make_staff) -> None:
    staff = make_staff()
    monday = date.today() + timedelta(days=(7 - date.today().weekday()))

    slots = list_my_slots(slot_date=monday, user=_staff_user(staff), db=db)

    assert len(slots) == 9
    assert {slot.slot_date for slot in slots} == {monday}


def test_disabling_booked_slot_requires_emergency_cancellation(
    db,
    make_staff,
    make_patient,
    make_slot,
    make_appointment,
) -> None:
    staff = make_staff()
    slot = make_slot(staff.id, current_bookings=1)
    appointment = make_appointment(slot, make_patient().id)

    with pytest.raises(HTTPException) as exception_info:
        update_slot_availability(
            slot_id=slot.id,
            data=AvailabilityUpdateRequest(is_available=False),
            user=_staff_user(staff),
            db=db,
        )

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == {
        'code': 'requires_emergency_cancellation',
        'message': 'This slot has booked appointments. Use emergency cancellation to disable it.',
        'appointment_ids': [appointment.id],
    }


def test_slot_of_another_doctor_is_not_found(db, make_staff, make_slot) -> None:
    owner = make_staff('Dr. A')
    intruder = make_staff('Dr. B')
    slot = make_slot(owner.id)

    with pytest.raises(HTTPException) as exception_info:
        update_slot_availability(
            slot_id=slot.id,
            data=AvailabilityUpdateRequest(is_available=False),
            user=_staff_user(intruder),
            db=db,
        )

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail['code'] == 'slot_not_found'


def test_emergency_cancel_returns_cancelled_ids(db, make_staff, make_patient, make_slot, make_appointment) -> None:
    staff = make_staff()
    slot = make_slot(staff.id, current_bookings=1)
    appointment = make_appointment(slot, make_patient().id)

    response = emergency_cancel(
        slot_id=slot.id,
        data=EmergencyCancelRequest(reason='medical_emergency', details='Surgery overran'),
        user=_staff_user(staff),
        db=db,
    )

    assert response.cancelled_appointment_ids == [appointment.id]
    assert response.reason == 'Medical Emergency: Surgery overran'
    assert response.slot.is_available is False
    assert response.slot.status == 'disabled'


def test_running_late_routes(db, make_staff, make_slot) -> None:
    staff = make_staff()
    slot = make_slot(staff.id)
    user = _staff_user(staff)

    late = mark_running_late(slot_id=slot.id, data=RunningLateRequest(delay_minutes=30), user=user, db=db)
    assert (late.is_running_late, late.delay_minutes) == (True, 30)

    adjusted = adjust_delay(slot_id=slot.id, data=DelayAdjustRequest(by_minutes=-30), user=user, db=db)
    assert (adjusted.is_running_late, adjusted.delay_minutes) == (False, 0)

    with pytest.raises(HTTPException) as exception_info:
        mark_running_late(slot_id=slot.id, data=RunningLateRequest(delay_minutes=0), user=user, db=db)
    assert exception_info.value.status_code == 400
    assert exception_info.value.detail['code'] == 'invalid_delay'


def test_running_late_routes_reject_delays_off_the_quick_picks(db, make_staff, make_slot) -> None:
    staff = make_staff()
    slot = make_slot(staff.id)
    user = _staff_user(staff)

    with pytest.raises(HTTPException) as exception_info:
        mark_running_late(slot_id=slot.id, data=RunningLateRequest(delay_minutes=7), user=user, db=db)
    assert exception_info.value.detail['code'] == 'invalid_delay'

    mark_running_late(slot_id=slot.id, data=RunningLateRequest(delay_minutes=15), user=user, db=db)
    with pytest.raises(HTTPException) as exception_info:
        adjust_delay(slot_id=slot.id, data=DelayAdjustRequest(by_minutes=3), user=user, db=db)
    assert exception_info.value.status_code == 400
    assert exception_info.value.detail['code'] == 'invalid_delay'


def test_update_slot_capacity(db, make_staff, make_slot) -> None:
    staff = make_staff()
    slot = make_slot(staff.id, current_bookings=3)
    user = _staff_user(staff)

    change = update_slot_capacity(slot_id=slot.id, data=CapacityUpdateRequest(max_capacity=2), user=user, db=db)
    assert change.below_current_bookings is True
    assert change.slot.status == 'full'

    with pytest.raises(HTTPException) as exception_info:
        update_slot_capacity(slot_id=slot.id, data=CapacityUpdateRequest(max_capacity=0), user=user, db=db)
    assert exception_info.value.status_code == 400


def test_update_day_availability_reports_blocked_slots(db, make_staff, make_slot) -> None:
    staff = make_staff()
    empty = make_slot(staff.id, start_hour=9)
    booked = make_slot(staff.id, start_hour=10, current_bookings=1)

    result = update_day_availability(
        slot_date=date(2026, 1, 5),
        data=AvailabilityUpdateRequest(is_available=False),
        user=_staff_user(staff),
        db=db,
    )

    assert result.updated_slot_ids == [empty.id]
    assert result.blocked_slot_ids == [booked.id]


def test_list_bookable_slots_hides_full_and_disabled(db, make_staff, make_patient, make_slot) -> None:
    staff = make_staff()
    patient = make_patient()
    day = date.today() + timedelta(days=1)
    open_slot = make_slot(staff.id, slot_date=day, start_hour=9)
    make_slot(staff.id, slot_date=day, start_hour=10, current_bookings=5)
    make_slot(staff.id, slot_date=day, start_hour=11, is_available=False)

    slots = list_bookable_slots(
        staff_id=staff.id,
        slot_date=day,
        user_id=patient.id,
        db=db,
    )

    assert [slot.id for slot in slots] == [open_slot.id]


def test_list_bookable_slots_rejects_past_dates(db, make_staff) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_bookable_slots(
            staff_id=make_staff().id,
            slot_date=date.today() - timedelta(days=1),
            user_id=1,
            db=db,
        )

    assert exception_info.value.status_code == 400
