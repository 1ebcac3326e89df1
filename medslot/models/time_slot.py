"""Time slot model definitions."""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Time,
    UniqueConstraint,
)

from medslot.core import config
from medslot.database import Base


class TimeSlot(Base):
    """A capacity-bounded block of bookable time for one staff member."""
    __tablename__ = "time_slots"
    __table_args__ = (
        UniqueConstraint("staff_id", "slot_date", "start_time", name="uq_time_slots_staff_date_start"),
        CheckConstraint("current_bookings >= 0", name="ck_time_slots_bookings_non_negative"),
        CheckConstraint("max_capacity > 0", name="ck_time_slots_capacity_positive"),
        CheckConstraint("delay_minutes >= 0", name="ck_time_slots_delay_non_negative"),
    )

    id = Column(Integer, primary_key=True)
    staff_id = Column(Integer, ForeignKey("staff.id"), nullable=False, index=True)
    slot_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
    current_bookings = Column(Integer, nullable=False, default=0)
    max_capacity = Column(Integer, nullable=False, default=config.DEFAULT_SLOT_CAPACITY)
    is_running_late = Column(Boolean, nullable=False, default=False)
    delay_minutes = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    @property
    def is_full(self) -> bool:
        return self.current_bookings >= self.max_capacity

    @property
    def remaining_capacity(self) -> int:
        return max(0, self.max_capacity - self.current_bookings)

    @property
    def fill_ratio(self) -> float:
        if not self.max_capacity:
            return 0.0
        return self.current_bookings / self.max_capacity

    @property
    def status(self) -> str:
        if not self.is_available:
            return "disabled"
        if self.is_full:
            return "full"
        if self.fill_ratio >= 0.7:
            return "filling"
        return "available"
