"""Appointment model definitions."""

from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Time

from medslot.database import Base


class Appointment(Base):
    """Represents a patient's booking against a time slot."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    staff_id = Column(Integer, ForeignKey("staff.id"), nullable=False, index=True)
    time_slot_id = Column(Integer, ForeignKey("time_slots.id"), nullable=True, index=True)
    appointment_date = Column(Date, nullable=False)
    appointment_time = Column(Time)
    status = Column(String, nullable=False, default="scheduled")
    reason = Column(String)
    notes = Column(String)
    cancellation_reason = Column(String)
    payment_reference = Column(String)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
