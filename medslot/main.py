import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from medslot.core import config
from medslot.core.logging import setup_logging
from medslot.database import Base, engine, ensure_appointment_schema, ensure_payment_schema, ensure_time_slot_schema
from medslot.models import appointment, patient, payment, staff, time_slot  # noqa: F401
from medslot.routes import analytics_routes, appointment_routes, availability_routes

setup_logging(config.LOG_LEVEL)
config.validate_runtime_config()

app = FastAPI(title='MedSlot API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_time_slot_schema()
        ensure_appointment_schema()
        ensure_payment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and Postgres credentials.')


@app.get('/')
def root():
    return {'status': 'MedSlot API Running'}


app.include_router(availability_routes.router, prefix='/availability')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(analytics_routes.router, prefix='/analytics')
