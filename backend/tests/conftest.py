"""
Configuration partagée pour tous les tests.

Aucune connexion réelle : base SQLite en mémoire, scheduler APScheduler
désactivé et remplacé par un FakeScheduler, stores en mémoire, horloge pilotée.
"""

import os

# Doit précéder tout import de app (settings lus à l'import)
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("TIMEZONE", "UTC")
os.environ["SCHEDULER_ENABLED"] = "false"

import uuid
from datetime import date, datetime, time, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from apscheduler.jobstores.base import JobLookupError
from fastapi.testclient import TestClient

from app.engine import AttendanceEngine, get_engine
from app.main import app
from app.schemas.actor import Actor
from app.schemas.attendance import PunchType
from app.schemas.location_check import (
    FullTimeMode, LocationCheckCreate, OnceSchedule, ScheduledMode, WeeklySchedule,
)

# Grand-Place de Bruxelles
CENTER_LAT = 50.8466
CENTER_LNG = 4.3528

# Lundi 2 mars 2026, 09:00 UTC
MONDAY_9AM = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


# --- Fakes ---

class FakeClock:
    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class FakeScheduler:
    """Remplace BackgroundScheduler : enregistre les jobs et les déclenche à la demande."""

    def __init__(self):
        self.jobs = {}
        self.removed = []

    def add_job(self, func, trigger=None, args=None, id=None, **kwargs):
        self.jobs[id] = SimpleNamespace(id=id, func=func, trigger=trigger, args=list(args or []), kwargs=kwargs)

    def remove_job(self, job_id):
        if job_id not in self.jobs:
            raise JobLookupError(job_id)
        del self.jobs[job_id]
        self.removed.append(job_id)

    def run(self, job_id):
        job = self.jobs[job_id]
        job.func(*job.args)


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def notify(self, scope, phase, message):
        self.events.append((scope, phase, message))


class InMemorySessionStore:
    def __init__(self):
        self.sessions = {}

    def add(self, session):
        self.sessions[session.id] = session

    def save(self, session):
        self.sessions[session.id] = session

    def get(self, session_id):
        return self.sessions.get(session_id)

    def delete(self, session_id):
        return self.sessions.pop(session_id, None) is not None

    def list_all(self, category=None):
        sessions = [s for s in self.sessions.values() if category is None or s.category == category]
        return sorted(sessions, key=lambda s: (s.created_at, str(s.id)))


class InMemoryAttendanceStore:
    def __init__(self):
        self.records = []

    def add(self, record):
        self.records.append(record)
        return record

    def insert_punch_in_if_absent(self, record, since, until):
        if self.find(
            user_id=record.user_id, session_id=record.session_id,
            type=PunchType.PUNCH_IN, since=since, until=until,
        ):
            return False
        self.records.append(record)
        return True

    def find(self, *, user_id=None, session_id=None, type=None, since=None, until=None):
        result = [
            r for r in self.records
            if (user_id is None or r.user_id == user_id)
            and (session_id is None or r.session_id == session_id)
            and (type is None or r.type == type)
            and (since is None or r.timestamp > since)
            and (until is None or r.timestamp <= until)
        ]
        return sorted(result, key=lambda r: r.timestamp)

    def delete_in_window(self, session_id, start, end):
        kept = [
            r for r in self.records
            if not (r.session_id == session_id and start <= r.timestamp <= end)
        ]
        deleted = len(self.records) - len(kept)
        self.records = kept
        return deleted


class StaticEnrollment:
    """Éligibles par catégorie ; catégorie None = tous les utilisateurs."""

    def __init__(self, users_by_category):
        self.users_by_category = users_by_category

    def eligible_user_ids(self, category):
        if category is None:
            return set().union(*self.users_by_category.values())
        return set(self.users_by_category.get(category, set()))


# --- Fixtures moteur ---

@pytest.fixture
def clock():
    return FakeClock(MONDAY_9AM)


@pytest.fixture
def fake_scheduler():
    return FakeScheduler()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def attendance_store():
    return InMemoryAttendanceStore()


@pytest.fixture
def actors():
    return SimpleNamespace(
        admin=Actor(user_id=uuid.uuid4(), role="admin"),
        staff_admin=Actor(user_id=uuid.uuid4(), role="category-admin", category="staff"),
        usher=Actor(user_id=uuid.uuid4(), role="usher", category="staff"),
        other_usher=Actor(user_id=uuid.uuid4(), role="usher", category="staff"),
        guest_usher=Actor(user_id=uuid.uuid4(), role="usher", category="guests"),
        member=Actor(user_id=uuid.uuid4(), role="member", category="staff"),
    )


@pytest.fixture
def enrollment(actors):
    return StaticEnrollment({
        "staff": {actors.usher.user_id, actors.other_usher.user_id, actors.staff_admin.user_id},
        "guests": {actors.guest_usher.user_id},
    })


@pytest.fixture
def engine(session_store, attendance_store, enrollment, fake_scheduler, notifier, clock):
    return AttendanceEngine(
        session_store,
        attendance_store,
        enrollment,
        fake_scheduler,
        notifier=notifier,
        clock=clock,
        sleep=lambda _: None,
    )


# --- Fabriques de données ---

@pytest.fixture
def once_check():
    """Check "once" le 2 mars 2026 : 10:00, durée 60, early 10, late 15, grâce 5."""
    def _make(
        day=date(2026, 3, 2), start=time(10, 0), duration=60, early=10, late=15,
        out_grace=5, radius=50, user_ids=None, **messages,
    ) -> LocationCheckCreate:
        return LocationCheckCreate(
            latitude=CENTER_LAT,
            longitude=CENTER_LNG,
            radius=radius,
            out_grace=out_grace,
            user_ids=user_ids or [],
            mode=ScheduledMode(
                schedule=OnceSchedule(date=day, start_time=start),
                duration_minutes=duration,
                early_window=early,
                late_window=late,
                **messages,
            ),
        )
    return _make


@pytest.fixture
def weekly_check():
    def _make(
        days=("mon",), start=time(10, 0), duration=60, early=10, late=15,
        out_grace=5, radius=50, user_ids=None,
    ) -> LocationCheckCreate:
        return LocationCheckCreate(
            latitude=CENTER_LAT,
            longitude=CENTER_LNG,
            radius=radius,
            out_grace=out_grace,
            user_ids=user_ids or [],
            mode=ScheduledMode(
                schedule=WeeklySchedule(days_of_week=list(days), start_time=start),
                duration_minutes=duration,
                early_window=early,
                late_window=late,
            ),
        )
    return _make


@pytest.fixture
def full_time_check():
    def _make(radius=50) -> LocationCheckCreate:
        return LocationCheckCreate(
            latitude=CENTER_LAT, longitude=CENTER_LNG, radius=radius, mode=FullTimeMode(),
        )
    return _make


# --- Clients HTTP ---

@pytest.fixture
def mock_engine():
    return MagicMock(spec=AttendanceEngine)


@pytest.fixture
def client(mock_engine):
    """Client HTTP de test avec le moteur mocké."""
    app.dependency_overrides[get_engine] = lambda: mock_engine
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def engine_client(engine):
    """Client HTTP de test branché sur un vrai moteur (stores en mémoire)."""
    app.dependency_overrides[get_engine] = lambda: engine
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
