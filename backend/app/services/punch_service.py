"""
Décision d'un pointage géolocalisé (PunchEvaluator).

Machine à états par (utilisateur, check) et par occurrence :
    NoPunchToday → PunchedIn → PunchedOut
Un check full-time bascule indéfiniment entrée / sortie, sans statut.

Algorithme pour un pointage (utilisateur, lat, lng, raison, now) :
1. Rôle hors PUNCH_ROLES → Forbidden
2. Candidats : checks full-time, ou occurrence dont le balayage
   (start + durée + lateWindow) n'est pas passé
3. Premier candidat (ordre de création) dont la zone contient le point ;
   à défaut, premier candidat où l'utilisateur a une entrée sans sortie
   (c'est hors zone qu'on pointe la sortie), sinon NoActiveCheckHere
4. Full-time : bascule entrée / sortie sur la journée
5-6. Pas encore entré : SessionEnded après la fin, MustBeInside hors zone,
   sinon punch-in early / on-time / late ; marqué absent par le balayage : SessionEnded
7. Entré sans sortie : dans la zone, un doublon du punch-in (moins de
   PUNCH_REPLAY_SECONDS) renvoie le punch-in existant, sinon MustLeaveToExit ;
   hors zone, délai de grâce (WaitBeforeAutoExit) puis punch-out
8. Déjà sorti : UnableToRecordPunch

Les étapes 4 à 8 s'exécutent sous le verrou (utilisateur, check).
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from app.config import settings
from app.exceptions import (
    Forbidden, MustBeInside, MustLeaveToExit, NoActiveCheckHere, SessionEnded,
    UnableToRecordPunch, WaitBeforeAutoExit,
)
from app.repositories.base import AttendanceStore
from app.schemas.actor import Actor
from app.schemas.attendance import AttendanceRecord, AttendanceStatus, PunchResult, PunchType
from app.schemas.location_check import GeoPoint, LocationCheckSession, ScheduledMode
from app.services.clock import Clock
from app.services.exit_grace import ExitConfirmed, ExitGraceTracker
from app.services.geo_service import is_inside
from app.services.location_service import LocationCheckRegistry
from app.services.locks import KeyedLocks
from app.services.schedule_service import Occurrence, current_occurrence, local_timezone

logger = logging.getLogger(__name__)


def punch_in_status(now: datetime, occurrence: Occurrence, mode: ScheduledMode) -> AttendanceStatus:
    """early avant start − earlyWindow, late après start + lateWindow, on-time entre les deux (bornes incluses)."""
    early_start = occurrence.start - timedelta(minutes=mode.early_window)
    late_end = occurrence.start + timedelta(minutes=mode.late_window)
    if now < early_start:
        return AttendanceStatus.EARLY
    if now > late_end:
        return AttendanceStatus.LATE
    return AttendanceStatus.ON_TIME


def select_session(sessions: List[LocationCheckSession], point: GeoPoint) -> Optional[LocationCheckSession]:
    """Premier check (dans l'ordre fourni) dont la zone contient le point."""
    for session in sessions:
        if is_inside(session.region, point):
            return session
    return None


class PunchEvaluator:

    def __init__(
        self,
        registry: LocationCheckRegistry,
        attendance_store: AttendanceStore,
        exit_tracker: ExitGraceTracker,
        locks: KeyedLocks,
        clock: Clock,
    ):
        self._registry = registry
        self._attendance = attendance_store
        self._exits = exit_tracker
        self._locks = locks
        self._clock = clock

    def submit_punch(
        self,
        actor: Actor,
        latitude: float,
        longitude: float,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PunchResult:
        """Évalue et enregistre un pointage. Lève une AttendanceError en cas de refus."""
        if actor.role not in settings.PUNCH_ROLES:
            raise Forbidden("Ce rôle ne peut pas pointer.")

        now = now or self._clock.now()
        point = GeoPoint(latitude=latitude, longitude=longitude)
        candidates = self._registry.candidates(now, actor.category)
        session = select_session(candidates, point) or self._open_session(actor.user_id, candidates, now)
        if session is None:
            raise NoActiveCheckHere()

        with self._locks.hold((actor.user_id, session.id)):
            if isinstance(session.mode, ScheduledMode):
                return self._punch_scheduled(actor.user_id, session, point, reason, now)
            return self._punch_full_time(actor.user_id, session, reason, now)

    # ----------------------------------------------------------------
    # Full-time
    # ----------------------------------------------------------------

    def _punch_full_time(
        self,
        user_id: uuid.UUID,
        session: LocationCheckSession,
        reason: Optional[str],
        now: datetime,
    ) -> PunchResult:
        tz = local_timezone()
        day_start = datetime.combine(now.astimezone(tz).date(), datetime.min.time(), tzinfo=tz)
        today = self._attendance.find(
            user_id=user_id,
            session_id=session.id,
            since=day_start - timedelta(microseconds=1),
            until=now,
        )
        is_open = bool(today) and today[-1].type == PunchType.PUNCH_IN
        punch_type = PunchType.PUNCH_OUT if is_open else PunchType.PUNCH_IN
        return self._record(user_id, session, punch_type, None, reason, now)

    # ----------------------------------------------------------------
    # Normal (once / weekly)
    # ----------------------------------------------------------------

    def _punch_scheduled(
        self,
        user_id: uuid.UUID,
        session: LocationCheckSession,
        point: GeoPoint,
        reason: Optional[str],
        now: datetime,
    ) -> PunchResult:
        mode = session.mode
        occurrence = current_occurrence(session, now)
        records = self._attendance.find(
            user_id=user_id,
            session_id=session.id,
            since=occurrence.opened_after,
            until=occurrence.closes_at,
        )
        punch_in = next((r for r in records if r.type == PunchType.PUNCH_IN), None)
        punched_out = any(r.type == PunchType.PUNCH_OUT for r in records)

        if punch_in is None:
            if now > occurrence.end:
                raise SessionEnded()
            if not is_inside(session.region, point):
                raise MustBeInside()
            status = punch_in_status(now, occurrence, mode)
            record = self._new_record(user_id, session, PunchType.PUNCH_IN, status, reason, now)
            if not self._attendance.insert_punch_in_if_absent(
                record, since=occurrence.opened_after, until=occurrence.closes_at,
            ):
                raise UnableToRecordPunch()
            logger.info(
                "Punch-in %s : utilisateur %s, check %s", status.value, user_id, session.id,
            )
            return self._result(record)

        if punch_in.status == AttendanceStatus.ABSENT:
            # Marqué absent par le balayage : l'occurrence est close pour lui
            raise SessionEnded()

        if not punched_out:
            if is_inside(session.region, point):
                if self._is_replay(punch_in, now):
                    logger.debug("Punch-in en double ignoré : utilisateur %s, check %s", user_id, session.id)
                    return self._result(punch_in)
                self._exits.on_inside_observed(user_id, session.id)
                raise MustLeaveToExit()
            decision = self._exits.on_outside_observed(user_id, session.id, now, session.out_grace)
            if not isinstance(decision, ExitConfirmed):
                raise WaitBeforeAutoExit(decision.minutes_left)
            self._exits.clear(user_id, session.id)
            return self._record(user_id, session, PunchType.PUNCH_OUT, None, reason, now)

        raise UnableToRecordPunch()

    # ----------------------------------------------------------------
    # Helpers
    # ----------------------------------------------------------------

    def _open_session(
        self,
        user_id: uuid.UUID,
        candidates: List[LocationCheckSession],
        now: datetime,
    ) -> Optional[LocationCheckSession]:
        """Premier check "normal" où l'utilisateur est entré sans être ressorti."""
        for session in candidates:
            occurrence = current_occurrence(session, now)
            if occurrence is None:
                continue
            records = self._attendance.find(
                user_id=user_id,
                session_id=session.id,
                since=occurrence.opened_after,
                until=occurrence.closes_at,
            )
            punched_in = any(
                r.type == PunchType.PUNCH_IN and r.status != AttendanceStatus.ABSENT for r in records
            )
            if punched_in and not any(r.type == PunchType.PUNCH_OUT for r in records):
                return session
        return None

    @staticmethod
    def _is_replay(punch_in: AttendanceRecord, now: datetime) -> bool:
        """Même punch-in renvoyé dans les PUNCH_REPLAY_SECONDS (requêtes simultanées, réémission client)."""
        return abs(now - punch_in.timestamp) <= timedelta(seconds=settings.PUNCH_REPLAY_SECONDS)

    def _new_record(self, user_id, session, punch_type, status, reason, now) -> AttendanceRecord:
        return AttendanceRecord(
            id=uuid.uuid4(),
            user_id=user_id,
            session_id=session.id,
            type=punch_type,
            timestamp=now,
            status=status,
            reason=reason or None,
        )

    def _record(self, user_id, session, punch_type, status, reason, now) -> PunchResult:
        record = self._attendance.add(self._new_record(user_id, session, punch_type, status, reason, now))
        logger.info("%s : utilisateur %s, check %s", punch_type.value, user_id, session.id)
        return self._result(record)

    @staticmethod
    def _result(record: AttendanceRecord) -> PunchResult:
        return PunchResult(
            session_id=record.session_id,
            record_id=record.id,
            type=record.type,
            status=record.status,
            timestamp=record.timestamp,
        )
