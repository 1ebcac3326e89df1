"""Suggested slots for a patient.

Each open future slot scores ``max(0, horizon - days_until)`` for being soon,
a flat bonus when it is with the doctor the patient has seen most, and a
smaller one when it starts within a couple of hours of the patient's usual
visiting hour. Ties fall back to date, start time and slot id.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, time

from sqlalchemy import select
from sqlalchemy.orm import Session

from medslot.core import config
from medslot.models.staff import Staff
from medslot.services.appointment_status import ACTIVE_STATUSES
from medslot.services.stores import AppointmentStore, SlotStore

REASON_OK = 'ok'
REASON_NO_SLOTS = 'no_slots_available'

TAG_PREFERRED_DOCTOR = 'preferred_doctor'
TAG_AVAILABLE_SOON = 'available_soon'


@dataclass(frozen=True)
class PatientPreferences:
    preferred_staff_id: int | None
    preferred_hour: float
    visit_counts: dict[int, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Recommendation:
    slot_id: int
    staff_id: int
    doctor_name: str
    slot_date: date
    start_time: time
    end_time: time
    time_range: str
    score: float
    reason_tag: str


@dataclass(frozen=True)
class RecommendationResult:
    recommendations: list[Recommendation]
    reason_code: str
    preferences: PatientPreferences


def format_time(value: time) -> str:
    hour = value.hour % 12 or 12
    period = 'PM' if value.hour >= 12 else 'AM'
    return f'{hour}:{value.minute:02d} {period}'


def format_time_range(start: time, end: time) -> str:
    return f'{format_time(start)} - {format_time(end)}'


def patient_preferences(patient_id: int, history) -> PatientPreferences:
    visits: Counter[int] = Counter()
    hours: list[int] = []

    for appointment in history:
        if appointment.patient_id != patient_id:
            continue
        visits[appointment.staff_id] += 1
        if appointment.appointment_time is not None:
            hours.append(appointment.appointment_time.hour)

    preferred_staff_id = visits.most_common(1)[0][0] if visits else None
    preferred_hour = sum(hours) / len(hours) if hours else config.FALLBACK_PREFERRED_HOUR

    return PatientPreferences(
        preferred_staff_id=preferred_staff_id,
        preferred_hour=preferred_hour,
        visit_counts=dict(visits),
    )


def score_slot(slot, today: date, preferences: PatientPreferences) -> float:
    days_until = (slot.slot_date - today).days
    score = float(max(0, config.RECOMMENDATION_HORIZON_DAYS - days_until))

    if preferences.preferred_staff_id is not None and slot.staff_id == preferences.preferred_staff_id:
        score += config.PREFERRED_DOCTOR_BONUS

    if abs(slot.start_time.hour - preferences.preferred_hour) <= config.PREFERRED_TIME_WINDOW_HOURS:
        score += config.PREFERRED_TIME_BONUS

    return score


def _is_open(slot, today: date) -> bool:
    return slot.slot_date >= today and slot.is_available and slot.current_bookings < slot.max_capacity


def suggest_slots(
    patient_id: int,
    history,
    open_slots,
    roster,
    today: date | None = None,
    limit: int = config.RECOMMENDATION_LIMIT,
) -> RecommendationResult:
    today = today or date.today()
    preferences = patient_preferences(patient_id, history)
    candidates = [slot for slot in open_slots if _is_open(slot, today)]

    if not candidates:
        return RecommendationResult(recommendations=[], reason_code=REASON_NO_SLOTS, preferences=preferences)

    ranked = sorted(
        ((score_slot(slot, today, preferences), slot) for slot in candidates),
        key=lambda item: (-item[0], item[1].slot_date, item[1].start_time, item[1].id),
    )
    names = {staff.id: staff.full_name for staff in roster}

    recommendations = [
        Recommendation(
            slot_id=slot.id,
            staff_id=slot.staff_id,
            doctor_name=names.get(slot.staff_id, 'Unknown Doctor'),
            slot_date=slot.slot_date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            time_range=format_time_range(slot.start_time, slot.end_time),
            score=score,
            reason_tag=TAG_PREFERRED_DOCTOR if slot.staff_id == preferences.preferred_staff_id else TAG_AVAILABLE_SOON,
        )
        for score, slot in ranked[:limit]
    ]
    return RecommendationResult(recommendations=recommendations, reason_code=REASON_OK, preferences=preferences)


def recommend_for_patient(
    db: Session,
    patient_id: int,
    staff_id: int | None = None,
    today: date | None = None,
    limit: int = config.RECOMMENDATION_LIMIT,
) -> RecommendationResult:
    """Load history, open slots and the roster, then rank.

    With ``staff_id`` the ranking is scoped to that doctor; without it every
    doctor's slots compete and the preferred-doctor bonus does the sorting.
    """
    today = today or date.today()
    history = AppointmentStore(db).query(
        patient_id=patient_id,
        staff_id=staff_id,
        statuses=sorted(status.value for status in ACTIVE_STATUSES),
    )
    open_slots = SlotStore(db).open_slots(today, staff_id=staff_id)
    roster = db.scalars(select(Staff)).all()
    return suggest_slots(patient_id, history, open_slots, roster, today=today, limit=limit)
