"""Staff model definitions."""

from sqlalchemy import Boolean, Column, Integer, String

from medslot.core import config
from medslot.database import Base


class Staff(Base):
    """A doctor or other staff member who owns time slots."""
    __tablename__ = "staff"

    id = Column(Integer, primary_key=True)
    full_name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True)
    department = Column(String)
    designation = Column(String)
    specialization = Column(String)
    slot_capacity = Column(Integer, nullable=False, default=config.DEFAULT_SLOT_CAPACITY)
    is_active = Column(Boolean, nullable=False, default=True)
