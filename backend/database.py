from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # Request handlers run in FastAPI's threadpool.
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(config.DATABASE_URL, **_engine_options(config.DATABASE_URL))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False
_appointment_note_schema_checked = False


def _apply_migration_steps(table_name: str, migration_steps: list[tuple[str, str]], index_statements: list[str]) -> None:
    inspector = inspect(engine)

    if table_name not in inspector.get_table_names():
        return

    existing_columns = {column['name'] for column in inspector.get_columns(table_name)}

    with engine.begin() as connection:
        for column_name, statement in migration_steps:
            if column_name not in existing_columns:
                connection.execute(text(statement))
        for statement in index_statements:
            connection.execute(text(statement))


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        _apply_migration_steps(
            'appointments',
            [
                ('title', 'ALTER TABLE appointments ADD COLUMN title VARCHAR'),
                ('cancellation_reason', 'ALTER TABLE appointments ADD COLUMN cancellation_reason VARCHAR'),
                ('created_at', 'ALTER TABLE appointments ADD COLUMN created_at TIMESTAMP'),
                ('updated_at', 'ALTER TABLE appointments ADD COLUMN updated_at TIMESTAMP'),
            ],
            [
                'CREATE INDEX IF NOT EXISTS idx_appointments_date_status ON appointments(date, status)',
                'CREATE INDEX IF NOT EXISTS idx_appointments_patient_date ON appointments(patient_id, date)',
            ],
        )

        _appointment_schema_checked = True


def ensure_appointment_note_schema() -> None:
    global _appointment_note_schema_checked

    if _appointment_note_schema_checked:
        return

    with _schema_lock:
        if _appointment_note_schema_checked:
            return

        _apply_migration_steps(
            'appointment_notes',
            [
                ('payment_amount', 'ALTER TABLE appointment_notes ADD COLUMN payment_amount NUMERIC(10, 2)'),
            ],
            [
                'CREATE INDEX IF NOT EXISTS idx_appointment_notes_patient_created '
                'ON appointment_notes(patient_id, created_at)',
            ],
        )

        _appointment_note_schema_checked = True
