"""
Planification des phases d'un check de localisation (PhaseScheduler).

Pour un check "normal", trois instants sont dérivés de l'instant de base B :
  early = B − earlyWindow, on-time = B, late + balayage = B + durée + lateWindow
- check "once"   : un job APScheduler à date fixe par instant
- check "weekly" : un job cron par instant (jour, heure, minute normalisés)
- check full-time : aucun job

Réarmer un check remplace tous ses jobs (annulation puis recréation).
Chaque armement porte un numéro de génération : un job d'une génération
périmée qui se déclencherait malgré tout (course avec une annulation) est ignoré.
L'état des jobs armés vit dans un SchedulerState explicite, pas dans un global.
"""

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from app.config import settings
from app.schemas.location_check import LocationCheckSession, OnceSchedule, ScheduledMode
from app.services.absence_service import AbsenceSweeper
from app.services.clock import Clock
from app.services.locks import KeyedLocks
from app.services.notification_service import GLOBAL_SCOPE, NotificationDispatcher, PhaseEvent
from app.services.schedule_service import (
    PHASE_EARLY, PHASE_LATE, PHASE_ON_TIME, occurrence_to_sweep, phase_instants, weekly_rules,
)

logger = logging.getLogger(__name__)

NOTIFY_MISFIRE_GRACE_SECONDS = 60
SWEEP_MISFIRE_GRACE_SECONDS = 3600


@dataclass(frozen=True)
class ArmedTimers:
    generation: int
    job_ids: List[str]


class SchedulerState:
    """Jobs armés par check (remplacés en bloc à chaque réarmement)."""

    def __init__(self):
        self._armed: Dict[uuid.UUID, ArmedTimers] = {}
        self._generation = 0

    def next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def get(self, session_id: uuid.UUID) -> Optional[ArmedTimers]:
        return self._armed.get(session_id)

    def set(self, session_id: uuid.UUID, armed: ArmedTimers) -> None:
        self._armed[session_id] = armed

    def pop(self, session_id: uuid.UUID) -> Optional[ArmedTimers]:
        return self._armed.pop(session_id, None)

    def session_ids(self) -> List[uuid.UUID]:
        return list(self._armed)

    def __len__(self) -> int:
        return len(self._armed)


def session_lock_key(session_id: uuid.UUID):
    return ("session", session_id)


def default_message(phase: str, mode: ScheduledMode) -> str:
    if phase == PHASE_EARLY:
        return mode.early_msg or f"Le check de localisation commence dans {mode.early_window} min."
    if phase == PHASE_ON_TIME:
        return mode.on_time_msg or "Le check de localisation commence maintenant."
    return mode.late_msg or "Le check de localisation est clôturé : les absents ont été marqués."


class PhaseScheduler:

    def __init__(
        self,
        scheduler,
        state: SchedulerState,
        session_lookup: Callable[[uuid.UUID], Optional[LocationCheckSession]],
        dispatcher: NotificationDispatcher,
        sweeper: AbsenceSweeper,
        clock: Clock,
        locks: KeyedLocks,
        on_swept: Optional[Callable[[LocationCheckSession, datetime], None]] = None,
    ):
        self._scheduler = scheduler
        self.state = state
        self._lookup = session_lookup
        self._dispatcher = dispatcher
        self._sweeper = sweeper
        self._clock = clock
        self._locks = locks
        self._on_swept = on_swept
        self._lock = threading.RLock()

    # ----------------------------------------------------------------
    # Armement
    # ----------------------------------------------------------------

    def arm(self, session: LocationCheckSession) -> List[str]:
        """(Ré)arme les jobs d'un check ; retourne les identifiants des jobs créés."""
        with self._lock:
            self.disarm(session.id)
            mode = session.mode
            if not isinstance(mode, ScheduledMode):
                return []

            generation = self.state.next_generation()
            if isinstance(mode.schedule, OnceSchedule):
                job_ids = self._arm_once(session, mode, generation)
            else:
                job_ids = self._arm_weekly(session, mode, generation)

            self.state.set(session.id, ArmedTimers(generation=generation, job_ids=job_ids))
            logger.info(
                "Check %s armé (génération %d) : %d job(s)", session.id, generation, len(job_ids),
            )
            return job_ids

    def _arm_once(self, session: LocationCheckSession, mode: ScheduledMode, generation: int) -> List[str]:
        now = self._clock.now()
        job_ids = []
        for phase, instant in phase_instants(session.start_at, mode).items():
            run_date = instant
            if instant <= now:
                if phase != PHASE_LATE:
                    continue  # rappel déjà passé
                # Balayage en retard (ex. redémarrage) : rejoué tout de suite s'il est récent
                if now - instant > timedelta(hours=settings.SWEEP_CATCHUP_HOURS):
                    continue
                run_date = now
            job_ids.append(self._add_job(
                session.id, phase, generation, DateTrigger(run_date=run_date),
            ))
        return job_ids

    def _arm_weekly(self, session: LocationCheckSession, mode: ScheduledMode, generation: int) -> List[str]:
        job_ids = []
        for phase, rule in weekly_rules(mode).items():
            trigger = CronTrigger(
                day_of_week=rule.day_of_week,
                hour=rule.hour,
                minute=rule.minute,
                timezone=settings.TIMEZONE,
            )
            job_ids.append(self._add_job(session.id, phase, generation, trigger))
        return job_ids

    def _add_job(self, session_id: uuid.UUID, phase: str, generation: int, trigger) -> str:
        job_id = f"location-check:{session_id}:{phase}"
        self._scheduler.add_job(
            self.fire,
            trigger=trigger,
            args=[session_id, phase, generation],
            id=job_id,
            replace_existing=True,
            misfire_grace_time=(
                SWEEP_MISFIRE_GRACE_SECONDS if phase == PHASE_LATE else NOTIFY_MISFIRE_GRACE_SECONDS
            ),
        )
        return job_id

    def disarm(self, session_id: uuid.UUID) -> None:
        """Annule tous les jobs d'un check. Sans effet si rien n'est armé."""
        with self._lock:
            armed = self.state.pop(session_id)
            if armed is None:
                return
            for job_id in armed.job_ids:
                try:
                    self._scheduler.remove_job(job_id)
                except JobLookupError:
                    # Job "date" déjà exécuté et retiré par APScheduler
                    pass
            logger.debug("Jobs du check %s annulés (génération %d)", session_id, armed.generation)

    def rearm_all(self, sessions: Iterable[LocationCheckSession]) -> int:
        count = 0
        for session in sessions:
            if self.arm(session):
                count += 1
        logger.info("%d check(s) réarmé(s) au démarrage", count)
        return count

    def disarm_all(self) -> None:
        with self._lock:
            for session_id in self.state.session_ids():
                self.disarm(session_id)

    # ----------------------------------------------------------------
    # Déclenchement
    # ----------------------------------------------------------------

    def fire(self, session_id: uuid.UUID, phase: str, generation: int) -> None:
        """
        Exécuté par APScheduler. Publie la notification de phase puis, pour la
        phase late, lance le balayage des absences. Ne lève jamais d'exception.
        """
        with self._locks.hold(session_lock_key(session_id)):
            armed = self.state.get(session_id)
            if armed is None or armed.generation != generation:
                logger.warning(
                    "Déclenchement périmé ignoré : check %s, phase %s, génération %d",
                    session_id, phase, generation,
                )
                return
            session = self._lookup(session_id)
            if session is None or not isinstance(session.mode, ScheduledMode):
                logger.warning("Check %s introuvable au déclenchement de %s", session_id, phase)
                return

            self._dispatcher.publish(PhaseEvent(
                session_id=session_id,
                phase=phase,
                message=default_message(phase, session.mode),
                scope=session.category or GLOBAL_SCOPE,
            ))

            if phase != PHASE_LATE:
                return

            now = self._clock.now()
            occurrence = occurrence_to_sweep(session, now)
            try:
                self._sweeper.sweep_with_retry(session, occurrence)
            except Exception as exc:
                logger.error("Erreur lors du balayage des absences du check %s : %s", session_id, exc)
                return

            # Toujours sous le verrou du check : une annulation ne peut pas s'intercaler
            if self._on_swept is not None:
                try:
                    self._on_swept(session, now)
                except Exception as exc:
                    logger.error("Erreur après balayage du check %s : %s", session_id, exc)
