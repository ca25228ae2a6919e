"""Persistence for appointments and the per-date write locks that guard it.

The store wraps one SQLAlchemy session. Writes are flushed into the session's
transaction and only become visible when the caller commits, so a request that
fails before commit leaves nothing behind.
"""

from contextlib import contextmanager
from datetime import date, datetime
from threading import Lock
from typing import Callable, Iterable, Iterator

from sqlalchemy import text
from sqlalchemy.orm import Session

from backend.models.appointment import ACTIVE_STATUSES, TERMINAL_STATUSES, Appointment, AppointmentStatus

DATE_LOCK_SHARDS = 64


class DateLockRegistry:
    """Fixed pool of locks sharded by calendar date."""

    def __init__(self, shards: int = DATE_LOCK_SHARDS) -> None:
        self._locks = [Lock() for _ in range(shards)]

    def _shard(self, day: date) -> int:
        return day.toordinal() % len(self._locks)

    @contextmanager
    def hold(self, *days: date) -> Iterator[None]:
        # Ascending shard order keeps two multi-date writers from deadlocking.
        shards = sorted({self._shard(day) for day in days})
        acquired: list[Lock] = []
        try:
            for shard in shards:
                lock = self._locks[shard]
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


date_locks = DateLockRegistry()


class AppointmentStore:
    def __init__(
        self,
        db: Session,
        now: Callable[[], datetime] = datetime.now,
        locks: DateLockRegistry = date_locks,
    ) -> None:
        self.db = db
        self._now = now
        self._locks = locks

    @contextmanager
    def lock_dates(self, *days: date) -> Iterator[None]:
        """Serialize check-then-write sequences for the given dates.

        The in-process shard lock covers threads of one worker. On PostgreSQL a
        transaction-scoped advisory lock extends that to every worker sharing
        the database; it is released by the caller's commit or rollback.
        """
        with self._locks.hold(*days):
            if self.db.get_bind().dialect.name == 'postgresql':
                for day in sorted(set(days)):
                    self.db.execute(text('SELECT pg_advisory_xact_lock(:key)'), {'key': day.toordinal()})
            yield

    def load_appointments_for_date(
        self,
        day: date,
        statuses: Iterable[AppointmentStatus] = ACTIVE_STATUSES,
        exclude_id: int | None = None,
    ) -> list[Appointment]:
        query = self.db.query(Appointment).filter(
            Appointment.date == day,
            Appointment.status.in_([status.value for status in statuses]),
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)

        # Conflict checks must see committed times, not this session's cached rows.
        return query.populate_existing().order_by(Appointment.start_time.asc()).all()

    def load_by_id(self, appointment_id: int, refresh: bool = False) -> Appointment | None:
        query = self.db.query(Appointment).filter(Appointment.id == appointment_id)
        if refresh:
            query = query.populate_existing()
        return query.first()

    def insert(self, appointment: Appointment) -> Appointment:
        timestamp = self._now()
        appointment.created_at = timestamp
        appointment.updated_at = timestamp
        self.db.add(appointment)
        self.db.flush()
        return appointment

    def update(self, appointment: Appointment) -> Appointment:
        appointment.updated_at = self._now()
        self.db.flush()
        return appointment

    def list_appointments(
        self,
        day: date | None = None,
        statuses: Iterable[AppointmentStatus] = ACTIVE_STATUSES,
    ) -> list[Appointment]:
        query = self.db.query(Appointment).filter(
            Appointment.status.in_([status.value for status in statuses]),
        )
        if day is not None:
            query = query.filter(Appointment.date == day)

        return query.order_by(Appointment.date.asc(), Appointment.start_time.asc()).all()

    def list_archived(self, day: date | None = None) -> list[Appointment]:
        query = self.db.query(Appointment).filter(
            Appointment.status.in_([status.value for status in TERMINAL_STATUSES]),
        )
        if day is not None:
            query = query.filter(Appointment.date == day)

        return query.order_by(Appointment.date.desc(), Appointment.start_time.desc()).all()

    def list_for_patient(self, patient_id: str, sort_by: str = 'date') -> list[Appointment]:
        query = self.db.query(Appointment).filter(Appointment.patient_id == patient_id)
        if sort_by == 'created':
            query = query.order_by(Appointment.created_at.desc(), Appointment.id.desc())
        else:
            query = query.order_by(Appointment.date.desc(), Appointment.start_time.desc())
        return query.all()

    def list_elapsed_scheduled(self, now: datetime) -> list[Appointment]:
        """``Scheduled`` appointments whose end time is strictly before ``now``."""
        candidates = self.db.query(Appointment).filter(
            Appointment.status == AppointmentStatus.SCHEDULED.value,
            Appointment.date <= now.date(),
        ).order_by(Appointment.date.asc(), Appointment.start_time.asc()).all()

        return [
            appointment
            for appointment in candidates
            if datetime.combine(appointment.date, appointment.end_time) < now
        ]
