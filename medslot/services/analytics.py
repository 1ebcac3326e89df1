"""Demand and workload figures for the admin dashboard.

The helpers here are pure functions over appointments, slots and staff rows
so they can be fed straight from the database or from plain test objects.
Cancelled appointments never count as demand.
"""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session

from medslot.core import config
from medslot.models.appointment import Appointment
from medslot.models.staff import Staff
from medslot.models.time_slot import TimeSlot
from medslot.services.appointment_status import AppointmentStatus
from medslot.services.recommendations import format_time_range

logger = logging.getLogger(__name__)

TREND_MIN_APPOINTMENTS = 6
TREND_TOLERANCE = 0.05


class AdvisoryLevel(str, Enum):
    HIGH = 'high'
    LOW = 'low'


class LoadTrend(str, Enum):
    INSUFFICIENT_DATA = 'insufficient_data'
    INCREASING = 'increasing'
    DECREASING = 'decreasing'
    STABLE = 'stable'


@dataclass(frozen=True)
class DemandAdvisory:
    day: date
    level: AdvisoryLevel
    expected: float
    actual: int
    ratio: float


@dataclass(frozen=True)
class UtilizationAdvisory:
    day: date
    level: AdvisoryLevel
    booked: int
    capacity: int
    utilization: float


@dataclass
class Forecast:
    advisories: list = field(default_factory=list)

    @property
    def aligned(self) -> bool:
        return not self.advisories


@dataclass(frozen=True)
class BusiestTimeSlot:
    time_range: str
    total_bookings: int


@dataclass(frozen=True)
class StaffWorkload:
    staff_id: int
    full_name: str
    appointment_count: int


@dataclass
class AnalyticsSummary:
    busiest_day: str | None
    busiest_time_slot: BusiestTimeSlot | None
    most_occupied_staff: StaffWorkload | None
    patient_load: LoadTrend
    staffing_demand: Forecast
    staff_requirement: Forecast
    staff_by_weekday: dict[str, list[StaffWorkload]]


def weekday_name(day: date) -> str:
    return day.strftime('%A')


def _demand(appointments) -> list:
    return [appt for appt in appointments if appt.status != AppointmentStatus.CANCELLED.value]


def expected_bookings_per_weekday(appointments) -> dict[str, float]:
    """Average bookings per calendar day, grouped by weekday name."""
    per_date = Counter(appt.appointment_date for appt in _demand(appointments))

    totals: Counter[str] = Counter()
    occurrences: Counter[str] = Counter()
    for day, count in per_date.items():
        name = weekday_name(day)
        totals[name] += count
        occurrences[name] += 1

    return {name: totals[name] / occurrences[name] for name in totals}


def predict_staffing_demand(
    appointments,
    today: date | None = None,
    lookahead_days: int = config.DEMAND_LOOKAHEAD_DAYS,
) -> Forecast:
    """Compare bookings already made for the next days against past weekdays.

    Expectations come from appointments before ``today``; days whose weekday
    has no history are skipped.
    """
    today = today or date.today()
    demand = _demand(appointments)
    expected = expected_bookings_per_weekday([appt for appt in demand if appt.appointment_date < today])
    actual_per_date = Counter(appt.appointment_date for appt in demand)

    forecast = Forecast()
    for offset in range(lookahead_days + 1):
        day = today + timedelta(days=offset)
        baseline = expected.get(weekday_name(day))
        if baseline is None:
            continue

        actual = actual_per_date.get(day, 0)
        ratio = actual / max(1.0, baseline)
        if ratio > config.HIGH_DEMAND_RATIO:
            level = AdvisoryLevel.HIGH
        elif ratio < config.LOW_DEMAND_RATIO:
            level = AdvisoryLevel.LOW
        else:
            continue

        forecast.advisories.append(
            DemandAdvisory(day=day, level=level, expected=baseline, actual=actual, ratio=ratio)
        )

    return forecast


def predict_staff_requirement(slots) -> Forecast:
    """Flag days whose slots are nearly full or mostly empty."""
    booked: Counter[date] = Counter()
    capacity: Counter[date] = Counter()
    for slot in slots:
        booked[slot.slot_date] += slot.current_bookings
        capacity[slot.slot_date] += slot.max_capacity

    forecast = Forecast()
    for day in sorted(capacity):
        if capacity[day] <= 0:
            continue

        utilization = booked[day] / capacity[day]
        if utilization > config.HIGH_UTILIZATION:
            level = AdvisoryLevel.HIGH
        elif utilization < config.LOW_UTILIZATION:
            level = AdvisoryLevel.LOW
        else:
            continue

        forecast.advisories.append(
            UtilizationAdvisory(
                day=day,
                level=level,
                booked=booked[day],
                capacity=capacity[day],
                utilization=utilization,
            )
        )

    return forecast


def busiest_day(appointments) -> str | None:
    counts = Counter(weekday_name(appt.appointment_date) for appt in _demand(appointments))
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def busiest_time_slot(slots) -> BusiestTimeSlot | None:
    totals: Counter[tuple] = Counter()
    for slot in slots:
        totals[(slot.start_time, slot.end_time)] += slot.current_bookings

    if not totals:
        return None

    # Earliest bucket wins a tie.
    (start, end), total = max(sorted(totals.items()), key=lambda item: item[1])
    return BusiestTimeSlot(time_range=format_time_range(start, end), total_bookings=total)


def _workloads(appointments, roster) -> list[StaffWorkload]:
    names = {staff.id: staff.full_name for staff in roster}
    counts = Counter(appt.staff_id for appt in appointments)
    return [
        StaffWorkload(staff_id=staff_id, full_name=names[staff_id], appointment_count=count)
        for staff_id, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        if staff_id in names
    ]


def most_occupied_staff(appointments, roster) -> StaffWorkload | None:
    workloads = _workloads(_demand(appointments), roster)
    return workloads[0] if workloads else None


def staff_for_high_demand_days(appointments, roster) -> dict[str, list[StaffWorkload]]:
    """Staff ranked by how many appointments they carry on each weekday."""
    by_weekday = defaultdict(list)
    for appt in _demand(appointments):
        by_weekday[weekday_name(appt.appointment_date)].append(appt)

    result = {}
    for name in sorted(by_weekday):
        workloads = _workloads(by_weekday[name], roster)
        if workloads:
            result[name] = workloads
    return result


def predict_patient_load(appointments) -> LoadTrend:
    demand = _demand(appointments)
    if len(demand) < TREND_MIN_APPOINTMENTS:
        return LoadTrend.INSUFFICIENT_DATA

    per_date = Counter(appt.appointment_date for appt in demand)
    days = sorted(per_date)
    if len(days) < 2:
        return LoadTrend.STABLE

    midpoint = len(days) // 2
    first, second = days[:midpoint], days[midpoint:]
    first_avg = sum(per_date[day] for day in first) / len(first)
    second_avg = sum(per_date[day] for day in second) / len(second)

    if second_avg > first_avg * (1 + TREND_TOLERANCE):
        return LoadTrend.INCREASING
    if second_avg < first_avg * (1 - TREND_TOLERANCE):
        return LoadTrend.DECREASING
    return LoadTrend.STABLE


def upcoming_slots(slots, today: date) -> list:
    return [slot for slot in slots if slot.slot_date >= today]


def build_summary(db: Session, today: date | None = None) -> AnalyticsSummary:
    today = today or date.today()
    appointments = db.scalars(select(Appointment)).all()
    slots = db.scalars(select(TimeSlot)).all()
    roster = db.scalars(select(Staff)).all()
    logger.debug(
        'Building analytics over %s appointments, %s slots and %s staff',
        len(appointments),
        len(slots),
        len(roster),
    )

    return AnalyticsSummary(
        busiest_day=busiest_day(appointments),
        busiest_time_slot=busiest_time_slot(slots),
        most_occupied_staff=most_occupied_staff(appointments, roster),
        patient_load=predict_patient_load(appointments),
        staffing_demand=predict_staffing_demand(appointments, today=today),
        staff_requirement=predict_staff_requirement(upcoming_slots(slots, today)),
        staff_by_weekday=staff_for_high_demand_days(appointments, roster),
    )
