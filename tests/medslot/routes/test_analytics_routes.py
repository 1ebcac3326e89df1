from datetime import date, timedelta

import pytest

from medslot.auth.dependencies import CurrentUser
from medslot.routes.analytics_routes import analytics_summary, recommend_any_doctor, recommend_for_doctor, staffing_demand


@pytest.fixture(autouse=True)
def database_ready(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('medslot.routes.analytics_routes.ensure_database_ready', lambda: None)


def test_recommendations_report_when_nothing_is_open(db, make_staff, make_patient) -> None:
    staff = make_staff()
    patient = make_patient()

    response = recommend_for_doctor(
        staff_id=staff.id,
        limit=5,
        user=CurrentUser(id=patient.id, email=patient.email, role='patient'),
        db=db,
    )

    assert response.reason_code == 'no_slots_available'
    assert response.recommendations == []
    assert response.preferred_hour == 10.0


def test_recommendations_across_doctors(db, make_staff, make_patient, make_slot) -> None:
    dr_a = make_staff('Dr. A')
    dr_b = make_staff('Dr. B')
    patient = make_patient()
    soon = make_slot(dr_b.id, slot_date=date.today() + timedelta(days=1), start_hour=10)
    make_slot(dr_a.id, slot_date=date.today() + timedelta(days=5), start_hour=16)

    response = recommend_any_doctor(
        limit=1,
        user=CurrentUser(id=patient.id, email=patient.email, role='patient'),
        db=db,
    )

    assert response.reason_code == 'ok'
    assert [item.slot_id for item in response.recommendations] == [soon.id]
    assert response.recommendations[0].doctor_name == 'Dr. B'
    assert response.recommendations[0].reason_tag == 'available_soon'


def test_staffing_demand_without_history_is_aligned(db, make_staff, make_slot) -> None:
    staff = make_staff()
    make_slot(staff.id, slot_date=date.today() + timedelta(days=1), start_hour=9, current_bookings=3)

    response = staffing_demand(lookahead_days=7, user=CurrentUser(id=staff.id, email=staff.email, role='staff'), db=db)

    assert response.demand_aligned is True
    assert response.utilization_aligned is True


def test_summary_on_empty_database(db, make_staff) -> None:
    staff = make_staff()

    response = analytics_summary(user=CurrentUser(id=staff.id, email=staff.email, role='staff'), db=db)

    assert response.busiest_day is None
    assert response.busiest_time_slot is None
    assert response.most_occupied_staff is None
    assert response.patient_load == 'insufficient_data'
    assert response.staff_by_weekday == {}
    assert response.demand.demand_aligned is True
