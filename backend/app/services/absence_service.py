"""
Balayage des absences à la clôture d'une occurrence (AbsenceSweeper).

Inscrits = user_ids du check, ou tous les éligibles de sa portée si la liste
est vide. Chaque inscrit sans punch-in sur l'occurrence reçoit un unique
enregistrement : punch-in / absent / timestamp = fin de l'occurrence.

Rejouable sans effet : un second passage (redémarrage, re-déclenchement)
n'insère rien de plus, grâce à l'insertion conditionnelle du store et au
verrou par (utilisateur, check) partagé avec les pointages.
"""

import logging
import time
import uuid
from typing import Callable, List

from app.config import settings
from app.repositories.base import AttendanceStore, EnrollmentProvider
from app.schemas.attendance import AttendanceRecord, AttendanceStatus, PunchType
from app.schemas.location_check import LocationCheckSession
from app.services.locks import KeyedLocks
from app.services.schedule_service import Occurrence

logger = logging.getLogger(__name__)


class AbsenceSweeper:

    def __init__(
        self,
        attendance_store: AttendanceStore,
        enrollment: EnrollmentProvider,
        locks: KeyedLocks,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._attendance = attendance_store
        self._enrollment = enrollment
        self._locks = locks
        self._sleep = sleep

    def enrolled_user_ids(self, session: LocationCheckSession) -> List[uuid.UUID]:
        if session.user_ids:
            return list(dict.fromkeys(session.user_ids))
        return sorted(self._enrollment.eligible_user_ids(session.category), key=str)

    def sweep(self, session: LocationCheckSession, occurrence: Occurrence) -> List[AttendanceRecord]:
        """
        Marque absents les inscrits non vus sur l'occurrence.
        Retourne les enregistrements d'absence effectivement créés.
        """
        seen = {
            r.user_id
            for r in self._attendance.find(
                session_id=session.id,
                type=PunchType.PUNCH_IN,
                since=occurrence.opened_after,
                until=occurrence.closes_at,
            )
        }

        created = []
        for user_id in self.enrolled_user_ids(session):
            if user_id in seen:
                continue
            record = AttendanceRecord(
                id=uuid.uuid4(),
                user_id=user_id,
                session_id=session.id,
                type=PunchType.PUNCH_IN,
                timestamp=occurrence.end,
                status=AttendanceStatus.ABSENT,
                reason=None,
            )
            with self._locks.hold((user_id, session.id)):
                inserted = self._attendance.insert_punch_in_if_absent(
                    record, since=occurrence.opened_after, until=occurrence.closes_at,
                )
            if inserted:
                created.append(record)

        logger.info(
            "Balayage du check %s (occurrence %s) : %d présents, %d absents marqués",
            session.id, occurrence.start.isoformat(), len(seen), len(created),
        )
        return created

    def sweep_with_retry(self, session: LocationCheckSession, occurrence: Occurrence) -> List[AttendanceRecord]:
        """
        Balayage avec nouvelles tentatives (backoff exponentiel) si le store est indisponible.
        Après SWEEP_MAX_ATTEMPTS échecs, l'erreur est journalisée et relevée.
        """
        delay = settings.SWEEP_RETRY_BACKOFF_SECONDS
        attempts = max(1, settings.SWEEP_MAX_ATTEMPTS)
        for attempt in range(1, attempts + 1):
            try:
                return self.sweep(session, occurrence)
            except Exception as exc:
                if attempt == attempts:
                    logger.error(
                        "Balayage du check %s abandonné après %d tentatives : %s",
                        session.id, attempts, exc, exc_info=True,
                    )
                    raise
                logger.warning(
                    "Balayage du check %s échoué (tentative %d/%d) : %s, nouvel essai dans %.1fs",
                    session.id, attempt, attempts, exc, delay,
                )
                self._sleep(delay)
                delay *= 2
        return []
