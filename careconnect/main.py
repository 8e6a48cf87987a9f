import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from careconnect.core import config
from careconnect.database import engine, ensure_availability_schema, ensure_appointment_schema
from careconnect.models import appointment, availability, provider
from careconnect.routes import appointment_routes, availability_routes, provider_routes

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

config.validate_runtime_config()

app = FastAPI(title='CareConnect Scheduling API')

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
        provider.Base.metadata.create_all(bind=engine)
        availability.Base.metadata.create_all(bind=engine)
        appointment.Base.metadata.create_all(bind=engine)
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'CareConnect Scheduling API Running'}


app.include_router(provider_routes.router, prefix='/providers')
app.include_router(availability_routes.router, prefix='/providers')
app.include_router(appointment_routes.router)
