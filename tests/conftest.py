import os
from datetime import date, time
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from medslot.database import Base  # noqa: E402
from medslot.models.appointment import Appointment  # noqa: E402
from medslot.models.patient import Patient  # noqa: E402
from medslot.models.payment import Payment  # noqa: E402
from medslot.models.staff import Staff  # noqa: E402
from medslot.models.time_slot import TimeSlot  # noqa: E402


def _session_factory(url: str):
    engine = create_engine(url)
    Base.metadata.create_all(bind=engine)
    return engine, sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db():
    engine, testing_session_local = _session_factory('sqlite:///:memory:')

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def file_sessions(tmp_path):
    """Two independent sessions over the same on-disk database."""
    engine, testing_session_local = _session_factory(f'sqlite:///{tmp_path / "slots.db"}')

    first = testing_session_local()
    second = testing_session_local()
    try:
        yield first, second
    finally:
        first.close()
        second.close()
        engine.dispose()


@pytest.fixture
def make_staff(db):
    def _make_staff(full_name: str = 'Dr. A', email: str | None = None, slot_capacity: int = 5) -> Staff:
        staff = Staff(
            full_name=full_name,
            email=email or f'{full_name.lower().replace(" ", "").replace(".", "")}@clinic.org',
            department='General Medicine',
            slot_capacity=slot_capacity,
            is_active=True,
        )
        db.add(staff)
        db.commit()
        db.refresh(staff)
        return staff

    return _make_staff


@pytest.fixture
def make_patient(db):
    def _make_patient(full_name: str = 'Pat Patient', email: str | None = None) -> Patient:
        patient = Patient(full_name=full_name, email=email or f'{full_name.lower().replace(" ", ".")}@example.com')
        db.add(patient)
        db.commit()
        db.refresh(patient)
        return patient

    return _make_patient


@pytest.fixture
def make_payment(db):
    def _make_payment(patient_id: int, reference: str = 'PAY-1', status: str = 'completed') -> Payment:
        payment = Payment(patient_id=patient_id, reference=reference, amount=Decimal('50.00'), status=status)
        db.add(payment)
        db.commit()
        db.refresh(payment)
        return payment

    return _make_payment


def add_slot(
    session,
    staff_id: int,
    slot_date: date = date(2026, 1, 5),
    start_hour: int = 10,
    current_bookings: int = 0,
    max_capacity: int = 5,
    is_available: bool = True,
) -> TimeSlot:
    slot = TimeSlot(
        staff_id=staff_id,
        slot_date=slot_date,
        start_time=time(start_hour, 0),
        end_time=time(start_hour + 1, 0),
        is_available=is_available,
        current_bookings=current_bookings,
        max_capacity=max_capacity,
        is_running_late=False,
        delay_minutes=0,
    )
    session.add(slot)
    session.commit()
    session.refresh(slot)
    return slot


@pytest.fixture
def make_slot(db):
    def _make_slot(staff_id: int, **fields) -> TimeSlot:
        return add_slot(db, staff_id, **fields)

    return _make_slot


@pytest.fixture
def make_appointment(db):
    def _make_appointment(slot: TimeSlot, patient_id: int, status: str = 'scheduled', **fields) -> Appointment:
        appointment = Appointment(
            patient_id=patient_id,
            staff_id=slot.staff_id,
            time_slot_id=slot.id,
            appointment_date=slot.slot_date,
            appointment_time=slot.start_time,
            status=status,
            **fields,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _make_appointment
