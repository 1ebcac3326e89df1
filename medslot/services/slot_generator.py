"""Materializes a staff member's recurring daily slots.

Generation is idempotent per ``(staff, date, start_time)``: buckets that
already exist are left alone and only the missing ones are inserted, so a day
that failed half way is completed by the next run. Each day commits on its
own and a failing day is logged and skipped.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medslot.core import config
from medslot.core.errors import InvalidCapacity, PersistenceFailure
from medslot.models.staff import Staff
from medslot.models.time_slot import TimeSlot
from medslot.services.stores import SlotStore

logger = logging.getLogger(__name__)

WEEKEND_DAYS = (5, 6)


@dataclass
class GenerationReport:
    days_created: list[date] = field(default_factory=list)
    days_skipped: list[date] = field(default_factory=list)
    failed_days: list[date] = field(default_factory=list)
    slots_created: int = 0

    def merge(self, other: 'GenerationReport') -> 'GenerationReport':
        self.days_created.extend(other.days_created)
        self.days_skipped.extend(other.days_skipped)
        self.failed_days.extend(other.failed_days)
        self.slots_created += other.slots_created
        return self


def daily_template(
    start_hour: int = config.DAY_START_HOUR,
    slots_per_day: int = config.SLOTS_PER_DAY,
    duration_minutes: int = config.SLOT_DURATION_MINUTES,
) -> list[tuple[time, time]]:
    buckets = []
    current = datetime.combine(date.min, time(start_hour, 0))
    step = timedelta(minutes=duration_minutes)

    for _ in range(slots_per_day):
        buckets.append((current.time(), (current + step).time()))
        current += step

    return buckets


def iterate_days(start_date: date, end_date: date, weekdays_only: bool = False, weekend_only: bool = False):
    if weekdays_only and weekend_only:
        raise ValueError('weekdays_only and weekend_only are mutually exclusive.')

    current_day = start_date
    while current_day <= end_date:
        is_weekend = current_day.weekday() in WEEKEND_DAYS
        if not (weekdays_only and is_weekend) and not (weekend_only and not is_weekend):
            yield current_day
        current_day += timedelta(days=1)


def resolve_capacity(db: Session, staff_id: int, capacity: int | None) -> int:
    if capacity is None:
        staff = db.get(Staff, staff_id)
        capacity = staff.slot_capacity if staff is not None and staff.slot_capacity else config.DEFAULT_SLOT_CAPACITY

    if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
        raise InvalidCapacity()

    return capacity


def generate_slots(
    db: Session,
    staff_id: int,
    start_date: date,
    end_date: date,
    capacity: int | None = None,
    weekdays_only: bool = False,
    weekend_only: bool = False,
) -> GenerationReport:
    days = list(iterate_days(start_date, end_date, weekdays_only=weekdays_only, weekend_only=weekend_only))
    capacity = resolve_capacity(db, staff_id, capacity)
    template = daily_template()
    store = SlotStore(db)
    report = GenerationReport()

    for day in days:
        try:
            existing = store.existing_start_times(staff_id, day)
            missing = [(start, end) for start, end in template if start not in existing]

            if not missing:
                report.days_skipped.append(day)
                continue

            store.insert([
                TimeSlot(
                    staff_id=staff_id,
                    slot_date=day,
                    start_time=start,
                    end_time=end,
                    is_available=True,
                    current_bookings=0,
                    max_capacity=capacity,
                    is_running_late=False,
                    delay_minutes=0,
                )
                for start, end in missing
            ])
        except (PersistenceFailure, SQLAlchemyError):
            db.rollback()
            logger.exception('Slot generation failed for staff %s on %s', staff_id, day)
            report.failed_days.append(day)
            continue

        report.days_created.append(day)
        report.slots_created += len(missing)

    logger.info(
        'Generated %s slots across %s days for staff %s (%s skipped, %s failed)',
        report.slots_created,
        len(report.days_created),
        staff_id,
        len(report.days_skipped),
        len(report.failed_days),
    )
    return report


def generate_slots_for_date(db: Session, staff_id: int, day: date, capacity: int | None = None) -> GenerationReport:
    return generate_slots(db, staff_id, day, day, capacity=capacity)


def _week_range(start_date: date, weeks: int) -> tuple[date, date]:
    if weeks <= 0:
        raise ValueError('weeks must be positive.')
    return start_date, start_date + timedelta(days=weeks * 7 - 1)


def enable_weekdays(db: Session, staff_id: int, start_date: date, weeks: int, capacity: int | None = None) -> GenerationReport:
    start, end = _week_range(start_date, weeks)
    return generate_slots(db, staff_id, start, end, capacity=capacity, weekdays_only=True)


def enable_weekend(db: Session, staff_id: int, start_date: date, weeks: int, capacity: int | None = None) -> GenerationReport:
    start, end = _week_range(start_date, weeks)
    return generate_slots(db, staff_id, start, end, capacity=capacity, weekend_only=True)


def ensure_slot_horizon(db: Session, staff_id: int, today: date | None = None) -> GenerationReport | None:
    """Extend a staff member's weekday coverage when it runs short."""
    today = today or date.today()
    latest = SlotStore(db).latest_slot_date(staff_id)

    if latest is None:
        logger.info('No slots found for staff %s, generating initial set', staff_id)
        return enable_weekdays(db, staff_id, today, config.SLOT_REPLENISH_WEEKS)

    if (latest - today).days < config.SLOT_LOOKAHEAD_DAYS:
        logger.info('Slot coverage for staff %s ends %s, extending', staff_id, latest)
        start_date = max(latest + timedelta(days=1), today)
        return enable_weekdays(db, staff_id, start_date, config.SLOT_REPLENISH_WEEKS)

    return None
