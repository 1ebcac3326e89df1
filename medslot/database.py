from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from medslot.core import config


engine = create_engine(config.DATABASE_URL, echo=config.SQL_ECHO)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_time_slot_schema_checked = False
_appointment_schema_checked = False
_payment_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_time_slot_schema() -> None:
    global _time_slot_schema_checked

    if _time_slot_schema_checked:
        return

    with _schema_lock:
        if _time_slot_schema_checked:
            return

        inspector = inspect(engine)

        if 'time_slots' not in inspector.get_table_names():
            _time_slot_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('time_slots')}
        migration_steps = [
            ('is_running_late', 'ALTER TABLE time_slots ADD COLUMN is_running_late BOOLEAN DEFAULT FALSE NOT NULL'),
            ('delay_minutes', 'ALTER TABLE time_slots ADD COLUMN delay_minutes INTEGER DEFAULT 0 NOT NULL'),
            ('updated_at', 'ALTER TABLE time_slots ADD COLUMN updated_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_time_slots_staff_date_start '
                    'ON time_slots(staff_id, slot_date, start_time)'
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_time_slots_staff_available ON time_slots(staff_id, is_available)')
            )

        _time_slot_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('reason', 'ALTER TABLE appointments ADD COLUMN reason VARCHAR'),
            ('notes', 'ALTER TABLE appointments ADD COLUMN notes VARCHAR'),
            ('cancellation_reason', 'ALTER TABLE appointments ADD COLUMN cancellation_reason VARCHAR'),
            ('payment_reference', 'ALTER TABLE appointments ADD COLUMN payment_reference VARCHAR'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_slot_status ON appointments(time_slot_id, status)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_patient_date ON appointments(patient_id, appointment_date)')
            )

        _appointment_schema_checked = True


def ensure_payment_schema() -> None:
    global _payment_schema_checked

    if _payment_schema_checked:
        return

    with _schema_lock:
        if _payment_schema_checked:
            return

        inspector = inspect(engine)

        if 'payments' not in inspector.get_table_names():
            _payment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('payments')}

        with engine.begin() as connection:
            if 'appointment_id' not in existing_columns:
                connection.execute(text('ALTER TABLE payments ADD COLUMN appointment_id INTEGER REFERENCES appointments(id)'))
            connection.execute(
                text('CREATE UNIQUE INDEX IF NOT EXISTS uq_payments_appointment ON payments(appointment_id)')
            )

        _payment_schema_checked = True
