"""
Assemblage du moteur de présence.

AttendanceEngine relie les composants (registre, planificateur de phases,
évaluation des pointages, suivi de sortie, balayage des absences, diffusion des
rappels) autour des stores fournis. Les routers n'utilisent que cette façade.
"""

import logging
import time
import uuid
from datetime import date, datetime, time as dt_time, timedelta
from typing import Callable, List, Optional

from app.config import settings
from app.repositories.base import AttendanceStore, EnrollmentProvider, SessionStore
from app.schemas.actor import Actor
from app.schemas.attendance import AttendanceRecord, PunchResult, PunchType
from app.schemas.location_check import LocationCheckCreate, LocationCheckSession
from app.services.absence_service import AbsenceSweeper
from app.services.clock import Clock, SystemClock
from app.services.exit_grace import ExitGraceTracker
from app.services.location_service import LocationCheckRegistry
from app.services.locks import KeyedLocks
from app.services.notification_service import LoggingNotifier, NotificationDispatcher, Notifier
from app.services.phase_scheduler import PhaseScheduler, SchedulerState
from app.services.punch_service import PunchEvaluator
from app.services.schedule_service import local_timezone

logger = logging.getLogger(__name__)


class AttendanceEngine:

    def __init__(
        self,
        session_store: SessionStore,
        attendance_store: AttendanceStore,
        enrollment: EnrollmentProvider,
        scheduler,
        notifier: Optional[Notifier] = None,
        clock: Optional[Clock] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.clock = clock or SystemClock()
        self.session_store = session_store
        self.attendance_store = attendance_store
        self.locks = KeyedLocks()
        self.exit_tracker = ExitGraceTracker()
        self.dispatcher = NotificationDispatcher(notifier or LoggingNotifier())
        self.sweeper = AbsenceSweeper(attendance_store, enrollment, self.locks, sleep=sleep)
        self.phase_scheduler = PhaseScheduler(
            scheduler,
            SchedulerState(),
            session_store.get,
            self.dispatcher,
            self.sweeper,
            self.clock,
            self.locks,
            on_swept=self._after_sweep,
        )
        self.registry = LocationCheckRegistry(
            session_store,
            attendance_store,
            enrollment,
            self.phase_scheduler,
            self.exit_tracker,
            self.locks,
            self.clock,
        )
        self.punches = PunchEvaluator(
            self.registry, attendance_store, self.exit_tracker, self.locks, self.clock,
        )

    # ----------------------------------------------------------------
    # Cycle de vie
    # ----------------------------------------------------------------

    def start(self) -> None:
        """Démarre la diffusion des rappels et réarme tous les checks stockés."""
        self.dispatcher.start()
        self.phase_scheduler.rearm_all(self.session_store.list_all())

    def stop(self) -> None:
        self.phase_scheduler.disarm_all()
        self.dispatcher.stop()

    def _after_sweep(self, session: LocationCheckSession, now: datetime) -> None:
        self.registry.refresh_bounds(session, now)

    # ----------------------------------------------------------------
    # Opérations
    # ----------------------------------------------------------------

    def create_session(self, data: LocationCheckCreate, actor: Actor) -> LocationCheckSession:
        return self.registry.create(data, actor)

    def update_session(
        self, session_id: uuid.UUID, data: LocationCheckCreate, actor: Actor,
    ) -> LocationCheckSession:
        return self.registry.update(session_id, data, actor)

    def cancel_session(self, session_id: uuid.UUID, actor: Actor) -> bool:
        return self.registry.cancel(session_id, actor)

    def submit_punch(
        self,
        actor: Actor,
        latitude: float,
        longitude: float,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PunchResult:
        return self.punches.submit_punch(actor, latitude, longitude, reason, now)

    def list_sessions(self, actor: Actor) -> List[LocationCheckSession]:
        return self.registry.list_for(actor)

    def list_active(self, now: Optional[datetime] = None) -> List[LocationCheckSession]:
        return self.registry.list_active(now or self.clock.now())

    def active_session(self, actor: Actor) -> Optional[LocationCheckSession]:
        return self.registry.active_for(actor, self.clock.now())

    def today(self) -> date:
        """Date du jour dans le fuseau settings.TIMEZONE."""
        return self.clock.now().astimezone(local_timezone()).date()

    def history(
        self,
        actor: Actor,
        day: Optional[date] = None,
        user_id: Optional[uuid.UUID] = None,
        punch_type: Optional[PunchType] = None,
    ) -> List[AttendanceRecord]:
        """
        Présences d'une journée (fuseau settings.TIMEZONE), de la plus récente à la plus ancienne.
        Hors gestionnaires, un utilisateur ne voit que ses propres enregistrements.
        """
        tz = local_timezone()
        day = day or self.today()
        day_start = datetime.combine(day, dt_time.min, tzinfo=tz)
        if actor.role not in settings.MANAGER_ROLES:
            user_id = actor.user_id
        records = self.attendance_store.find(
            user_id=user_id,
            type=punch_type,
            since=day_start - timedelta(microseconds=1),
            until=day_start + timedelta(days=1) - timedelta(microseconds=1),
        )
        return list(reversed(records))


_engine: Optional[AttendanceEngine] = None


def build_engine() -> AttendanceEngine:
    """Moteur branché sur la base SQL et sur le BackgroundScheduler de l'application."""
    from app.database import SessionLocal
    from app.repositories.sql import SqlAttendanceStore, SqlEnrollmentProvider, SqlSessionStore
    from app.scheduler import scheduler

    return AttendanceEngine(
        SqlSessionStore(SessionLocal),
        SqlAttendanceStore(SessionLocal),
        SqlEnrollmentProvider(SessionLocal),
        scheduler,
    )


def get_engine() -> AttendanceEngine:
    """Dépendance FastAPI : moteur unique du processus, créé au premier usage."""
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine
