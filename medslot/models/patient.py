"""Patient model definitions."""

from sqlalchemy import Column, Integer, String

from medslot.database import Base


class Patient(Base):
    """Represents a patient who books appointments."""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True)
    full_name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True)
