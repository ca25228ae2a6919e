import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.database import Base, engine, ensure_appointment_note_schema, ensure_appointment_schema
from backend.models import appointment, appointment_note  # noqa: F401  registers tables on Base
from backend.routes import appointment_routes, availability_routes, notes_routes
from backend.scheduling.events import event_bus, log_scheduling_event

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    event_bus.subscribe(log_scheduling_event)
    try:
        Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
        ensure_appointment_note_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Clinic Scheduling API Running'}


app.include_router(availability_routes.router, prefix='/availability')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(notes_routes.router, prefix='/notes')


if __name__ == '__main__':
    import uvicorn

    uvicorn.run('backend.main:app', host=config.APP_HOST, port=config.APP_PORT, reload=config.APP_ENV == 'development')
