"""Payment model definitions."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String

from medslot.database import Base


class Payment(Base):
    """A consultation payment; a completed one backs at most one live booking."""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    reference = Column(String, nullable=False, unique=True)
    amount = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String, nullable=False, default="pending")  # pending/completed/refunded
    # Set while a live appointment consumes this payment.
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True, unique=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
