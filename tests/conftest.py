import os
from datetime import datetime, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from backend.database import Base  # noqa: E402
from backend.models.appointment import Appointment  # noqa: E402
from backend.models.appointment_note import AppointmentNote  # noqa: E402
from backend.scheduling.clock import BusinessHours, SchedulingSettings  # noqa: E402
from backend.scheduling.engine import SchedulingEngine  # noqa: E402
from backend.scheduling.events import EventBus  # noqa: E402
from backend.scheduling.store import DateLockRegistry  # noqa: E402

TABLES = [Appointment.__table__, AppointmentNote.__table__]


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    # Wednesday 2024-02-28, before opening.
    return FakeClock(datetime(2024, 2, 28, 8, 0))


@pytest.fixture
def scheduling_settings() -> SchedulingSettings:
    return SchedulingSettings(
        hours=BusinessHours(time(9, 0), time(17, 0)),
        display_hours=BusinessHours(time(9, 0), time(19, 0)),
        granularity_minutes=30,
    )


@pytest.fixture
def recorded_events() -> list:
    return []


@pytest.fixture
def event_bus(recorded_events) -> EventBus:
    bus = EventBus()
    bus.subscribe(recorded_events.append)
    return bus


@pytest.fixture
def appointment_db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))


@pytest.fixture
def scheduling_engine(appointment_db, scheduling_settings, event_bus, clock) -> SchedulingEngine:
    return SchedulingEngine(
        appointment_db,
        settings=scheduling_settings,
        events=event_bus,
        now=clock,
        locks=DateLockRegistry(),
    )
