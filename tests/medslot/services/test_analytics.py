from datetime import date, time, timedelta
from types import SimpleNamespace

import pytest

from medslot.services import analytics
from medslot.services.analytics import AdvisoryLevel, LoadTrend

DR_A = SimpleNamespace(id=1, full_name='Dr. A')
DR_B = SimpleNamespace(id=2, full_name='Dr. B')


def _appointment(day: date, staff_id: int = DR_A.id, status: str = 'scheduled'):
    return SimpleNamespace(appointment_date=day, staff_id=staff_id, status=status, patient_id=10)


def _appointments(day: date, count: int, **fields) -> list:
    return [_appointment(day, **fields) for _ in range(count)]


def _slot(day: date, hour: int, booked: int, capacity: int = 10):
    return SimpleNamespace(
        slot_date=day,
        start_time=time(hour, 0),
        end_time=time(hour + 1, 0),
        current_bookings=booked,
        max_capacity=capacity,
    )


def test_expected_bookings_average_per_calendar_day() -> None:
    # 2026-01-05 and 2026-01-12 are Mondays.
    appointments = _appointments(date(2026, 1, 5), 2) + _appointments(date(2026, 1, 12), 4)
    appointments.append(_appointment(date(2026, 1, 12), status='cancelled'))

    assert analytics.expected_bookings_per_weekday(appointments) == {'Monday': 3.0}


def test_predict_staffing_demand_flags_high_and_low_days() -> None:
    history = _appointments(date(2026, 1, 5), 2) + _appointments(date(2026, 1, 12), 4)
    upcoming = _appointments(date(2026, 1, 19), 6)

    forecast = analytics.predict_staffing_demand(history + upcoming, today=date(2026, 1, 19), lookahead_days=7)

    assert forecast.aligned is False
    assert [(advisory.day, advisory.level, advisory.actual) for advisory in forecast.advisories] == [
        (date(2026, 1, 19), AdvisoryLevel.HIGH, 6),
        (date(2026, 1, 26), AdvisoryLevel.LOW, 0),
    ]
    assert forecast.advisories[0].ratio == pytest.approx(2.0)


def test_predict_staffing_demand_is_aligned_when_bookings_match_history() -> None:
    history = _appointments(date(2026, 1, 5), 3) + _appointments(date(2026, 1, 12), 3)
    upcoming = _appointments(date(2026, 1, 19), 3)

    forecast = analytics.predict_staffing_demand(history + upcoming, today=date(2026, 1, 19), lookahead_days=0)

    assert forecast.aligned is True
    assert forecast.advisories == []


def test_predict_staff_requirement_uses_slot_utilization() -> None:
    slots = [
        _slot(date(2026, 1, 5), 9, booked=9),
        _slot(date(2026, 1, 6), 9, booked=5),
        _slot(date(2026, 1, 7), 9, booked=1),
        _slot(date(2026, 1, 7), 10, booked=1),
    ]

    forecast = analytics.predict_staff_requirement(slots)

    assert [(advisory.day, advisory.level) for advisory in forecast.advisories] == [
        (date(2026, 1, 5), AdvisoryLevel.HIGH),
        (date(2026, 1, 7), AdvisoryLevel.LOW),
    ]
    assert forecast.advisories[1].utilization == pytest.approx(0.1)


def test_predict_staff_requirement_without_slots_is_aligned() -> None:
    assert analytics.predict_staff_requirement([]).aligned is True


def test_busiest_day_ignores_cancellations() -> None:
    appointments = _appointments(date(2026, 1, 6), 2) + _appointments(date(2026, 1, 7), 3, status='cancelled')
    appointments.append(_appointment(date(2026, 1, 7)))

    assert analytics.busiest_day(appointments) == 'Tuesday'
    assert analytics.busiest_day([]) is None


def test_busiest_time_slot_sums_bookings_per_bucket() -> None:
    slots = [
        _slot(date(2026, 1, 5), 9, booked=2),
        _slot(date(2026, 1, 6), 9, booked=3),
        _slot(date(2026, 1, 5), 14, booked=5),
        _slot(date(2026, 1, 5), 16, booked=1),
    ]

    busiest = analytics.busiest_time_slot(slots)

    assert busiest == analytics.BusiestTimeSlot(time_range='9:00 AM - 10:00 AM', total_bookings=5)
    assert analytics.busiest_time_slot([]) is None


def test_most_occupied_staff_and_weekday_breakdown() -> None:
    appointments = (
        _appointments(date(2026, 1, 5), 3, staff_id=DR_A.id)
        + _appointments(date(2026, 1, 5), 1, staff_id=DR_B.id)
        + _appointments(date(2026, 1, 6), 2, staff_id=DR_B.id)
        + _appointments(date(2026, 1, 6), 1, staff_id=99)
    )

    busiest = analytics.most_occupied_staff(appointments, [DR_A, DR_B])
    assert busiest == analytics.StaffWorkload(staff_id=DR_A.id, full_name='Dr. A', appointment_count=3)
    assert analytics.most_occupied_staff([], [DR_A]) is None

    by_weekday = analytics.staff_for_high_demand_days(appointments, [DR_A, DR_B])
    assert list(by_weekday) == ['Monday', 'Tuesday']
    assert [workload.full_name for workload in by_weekday['Monday']] == ['Dr. A', 'Dr. B']
    assert [workload.full_name for workload in by_weekday['Tuesday']] == ['Dr. B']


@pytest.mark.parametrize(
    ('daily_counts', 'trend'),
    [
        ([1, 1, 1], LoadTrend.INSUFFICIENT_DATA),
        ([6], LoadTrend.STABLE),
        ([1, 1, 3, 3], LoadTrend.INCREASING),
        ([3, 3, 1, 1], LoadTrend.DECREASING),
        ([2, 2, 2, 2], LoadTrend.STABLE),
    ],
)
def test_predict_patient_load(daily_counts: list[int], trend: LoadTrend) -> None:
    appointments = []
    for offset, count in enumerate(daily_counts):
        appointments.extend(_appointments(date(2026, 1, 5) + timedelta(days=offset), count))

    assert analytics.predict_patient_load(appointments) is trend


def test_build_summary_reads_the_database(db, make_staff, make_patient, make_slot, make_appointment) -> None:
    staff = make_staff()
    patient = make_patient()
    slot = make_slot(staff.id, slot_date=date(2026, 1, 6), start_hour=9, current_bookings=2, max_capacity=10)
    make_appointment(slot, patient.id)
    make_appointment(slot, patient.id, status='confirmed')

    summary = analytics.build_summary(db, today=date(2026, 1, 6))

    assert summary.busiest_day == 'Tuesday'
    assert summary.busiest_time_slot.total_bookings == 2
    assert summary.most_occupied_staff.full_name == 'Dr. A'
    assert summary.patient_load is LoadTrend.INSUFFICIENT_DATA
    assert summary.staffing_demand.aligned is True
    assert [advisory.level for advisory in summary.staff_requirement.advisories] == [AdvisoryLevel.LOW]


def test_build_summary_judges_utilization_on_upcoming_slots_only(db, make_staff, make_slot) -> None:
    staff = make_staff()
    make_slot(staff.id, slot_date=date(2026, 1, 5), start_hour=9, current_bookings=0, max_capacity=10)
    make_slot(staff.id, slot_date=date(2026, 1, 7), start_hour=9, current_bookings=5, max_capacity=10)

    summary = analytics.build_summary(db, today=date(2026, 1, 6))

    # The empty past Monday would read as LOW if it were counted.
    assert summary.staff_requirement.aligned is True
    assert summary.busiest_time_slot.total_bookings == 5
