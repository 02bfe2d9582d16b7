import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from calmme.core import config
from calmme.database import Base, engine, ensure_appointment_schema, ensure_schedule_schema
from calmme.models import appointment, psychologist, schedule, user  # noqa: F401
from calmme.routes import appointment_routes, auth_routes, availability_routes, psychologist_routes

logging.basicConfig(level=config.LOG_LEVEL)
config.validate_runtime_config()

app = FastAPI(title='CalmMe Consultation API')

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
        ensure_schedule_schema()
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'CalmMe Consultation API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(psychologist_routes.router, prefix='/psychologists')
app.include_router(availability_routes.router, prefix='/availability')
app.include_router(appointment_routes.router, prefix='/appointments')
