"""Appointment status progression.

``scheduled -> confirmed -> inProgress -> completed``, with ``cancelled`` and
``noShow`` as terminal exits from any live state and ``rescheduled`` as a side
transition that keeps the appointment alive on a different slot.
"""

from datetime import date, datetime, time
from enum import Enum

from medslot.core.errors import InvalidStatusTransition


class AppointmentStatus(str, Enum):
    SCHEDULED = 'scheduled'
    CONFIRMED = 'confirmed'
    IN_PROGRESS = 'inProgress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    NO_SHOW = 'noShow'
    RESCHEDULED = 'rescheduled'

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    AppointmentStatus.SCHEDULED: 'Scheduled',
    AppointmentStatus.CONFIRMED: 'Confirmed',
    AppointmentStatus.IN_PROGRESS: 'In Progress',
    AppointmentStatus.COMPLETED: 'Completed',
    AppointmentStatus.CANCELLED: 'Cancelled',
    AppointmentStatus.NO_SHOW: 'No Show',
    AppointmentStatus.RESCHEDULED: 'Rescheduled',
}

TERMINAL_STATUSES = frozenset({
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
    AppointmentStatus.NO_SHOW,
})

# Everything except cancelled holds a seat in its slot.
ACTIVE_STATUSES = frozenset(status for status in AppointmentStatus if status is not AppointmentStatus.CANCELLED)

# Statuses that can still change; an emergency cancellation touches only these.
LIVE_STATUSES = frozenset(status for status in AppointmentStatus if status not in TERMINAL_STATUSES)

_PROGRESSION = (
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.IN_PROGRESS,
    AppointmentStatus.COMPLETED,
)


def parse_status(value: str | AppointmentStatus) -> AppointmentStatus:
    if isinstance(value, AppointmentStatus):
        return value
    try:
        return AppointmentStatus(value)
    except ValueError as exc:
        raise InvalidStatusTransition(f'Unknown appointment status: {value!r}.') from exc


def _progression_rank(status: AppointmentStatus) -> int:
    if status is AppointmentStatus.RESCHEDULED:
        return 0
    return _PROGRESSION.index(status)


def can_transition(current: str | AppointmentStatus, target: str | AppointmentStatus) -> bool:
    current = parse_status(current)
    target = parse_status(target)

    if current in TERMINAL_STATUSES:
        return False
    if target in (AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW, AppointmentStatus.RESCHEDULED):
        return True
    if target is AppointmentStatus.SCHEDULED:
        return False

    return _progression_rank(target) > _progression_rank(current)


def ensure_transition(current: str | AppointmentStatus, target: str | AppointmentStatus) -> AppointmentStatus:
    if not can_transition(current, target):
        raise InvalidStatusTransition(
            f'Cannot move an appointment from {parse_status(current).value} to {parse_status(target).value}.'
        )
    return parse_status(target)


def is_missed(now: datetime, slot_date: date, slot_end: time | None, status: str | AppointmentStatus) -> bool:
    """Whether a live appointment's slot has already ended.

    Derived for display only; never persisted.
    """
    if parse_status(status) in TERMINAL_STATUSES:
        return False

    if slot_end is None:
        return slot_date < now.date()

    return datetime.combine(slot_date, slot_end) < now


def display_status(now: datetime, slot_date: date, slot_end: time | None, status: str | AppointmentStatus) -> str:
    if is_missed(now, slot_date, slot_end, status):
        return 'Missed'
    return parse_status(status).display_name
