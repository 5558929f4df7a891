"""
Service métier des checks de localisation (registre des sessions).

Création, modification, annulation et lecture des checks. Toute création ou
modification réarme les jobs de phase ; toute annulation les démonte et,
pour un check "normal", supprime les présences de sa fenêtre [start, start + durée].

Droits :
- seuls les rôles MANAGER_ROLES gèrent les checks
- un check créé par un admin de catégorie est limité à sa catégorie et non protégé
- un check créé par un rôle privilégié est global et protégé (is_default)
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from app.config import settings
from app.exceptions import Forbidden, SessionNotFound
from app.repositories.base import AttendanceStore, EnrollmentProvider, SessionStore
from app.schemas.actor import Actor
from app.schemas.location_check import (
    GeoRegion, LocationCheckCreate, LocationCheckSession, ScheduledMode, WeeklySchedule,
)
from app.services.clock import Clock
from app.services.exit_grace import ExitGraceTracker
from app.services.locks import KeyedLocks
from app.services.phase_scheduler import PhaseScheduler, session_lock_key
from app.services.schedule_service import current_occurrence, initial_bounds, next_weekly_start

logger = logging.getLogger(__name__)


ALL_CATEGORIES = object()


def is_category_scoped(actor: Actor) -> bool:
    return actor.role not in settings.PRIVILEGED_ROLES


class LocationCheckRegistry:

    def __init__(
        self,
        store: SessionStore,
        attendance_store: AttendanceStore,
        enrollment: EnrollmentProvider,
        phase_scheduler: PhaseScheduler,
        exit_tracker: ExitGraceTracker,
        locks: KeyedLocks,
        clock: Clock,
    ):
        self._store = store
        self._attendance = attendance_store
        self._enrollment = enrollment
        self._phases = phase_scheduler
        self._exits = exit_tracker
        self._locks = locks
        self._clock = clock

    # ----------------------------------------------------------------
    # Écriture
    # ----------------------------------------------------------------

    def create(self, data: LocationCheckCreate, actor: Actor) -> LocationCheckSession:
        """
        Crée un check et arme ses jobs de phase.

        Lève Forbidden si le rôle ne peut pas gérer de check,
        InvalidSchedule si la planification n'est pas résoluble.
        """
        self._require_manager(actor)
        now = self._clock.now()
        start_at, expires_at = initial_bounds(data.mode, now)
        scoped = is_category_scoped(actor)

        session = LocationCheckSession(
            id=uuid.uuid4(),
            region=self._region(data),
            mode=data.mode,
            out_grace=max(0, data.out_grace),
            user_ids=self._allowed_user_ids(data.user_ids, actor),
            category=actor.category if scoped else None,
            issued_by=actor.user_id,
            is_default=not scoped,
            start_at=start_at,
            expires_at=expires_at,
            created_at=now,
        )
        self._store.add(session)
        self._phases.arm(session)

        logger.info(
            "Check de localisation créé : %s (%s, catégorie=%s), %d inscrit(s)",
            session.id, session.mode.mode, session.category or "globale", len(session.user_ids),
        )
        return session

    def update(
        self,
        session_id: uuid.UUID,
        data: LocationCheckCreate,
        actor: Actor,
    ) -> LocationCheckSession:
        """
        Remplace la définition d'un check (mêmes règles que la création)
        puis réarme ses jobs. Lève SessionNotFound si le check n'existe pas.
        """
        self._require_manager(actor)
        with self._locks.hold(session_lock_key(session_id)):
            current = self._store.get(session_id)
            if current is None:
                raise SessionNotFound()
            self._require_scope(current, actor)

            start_at, expires_at = initial_bounds(data.mode, self._clock.now())
            session = current.model_copy(update={
                "region": self._region(data),
                "mode": data.mode,
                "out_grace": max(0, data.out_grace),
                "user_ids": self._allowed_user_ids(data.user_ids, actor),
                "start_at": start_at,
                "expires_at": expires_at,
            })
            self._store.save(session)
            self._phases.arm(session)

        logger.info("Check de localisation modifié : %s", session_id)
        return session

    def cancel(self, session_id: uuid.UUID, actor: Actor) -> bool:
        """
        Annule (supprime) un check : jobs démontés, présences de sa fenêtre
        supprimées (mode normal), check supprimé.
        Retourne False si le check n'existe pas (annuler deux fois est sans effet).
        """
        self._require_manager(actor)
        with self._locks.hold(session_lock_key(session_id)):
            session = self._store.get(session_id)
            if session is None:
                self._phases.disarm(session_id)
                return False
            self._require_scope(session, actor)
            if session.is_default and actor.role not in settings.PRIVILEGED_ROLES:
                raise Forbidden("Impossible de supprimer un check par défaut.")

            self._phases.disarm(session_id)
            deleted = 0
            if not session.is_full_time and session.expires_at is not None:
                deleted = self._attendance.delete_in_window(
                    session_id, session.start_at, session.expires_at,
                )
            self._store.delete(session_id)
            self._exits.clear_session(session_id)

        logger.info("Check de localisation annulé : %s, %d présence(s) supprimée(s)", session_id, deleted)
        return True

    def refresh_bounds(self, session: LocationCheckSession, now: datetime) -> Optional[LocationCheckSession]:
        """
        Avance start_at / expires_at d'un check hebdomadaire vers sa prochaine occurrence.
        Appelé après le balayage, sous le verrou du check.
        """
        mode = session.mode
        if not isinstance(mode, ScheduledMode) or not isinstance(mode.schedule, WeeklySchedule):
            return None
        if self._store.get(session.id) is None:
            return None
        start = next_weekly_start(mode.schedule, mode.duration_minutes, now + timedelta(seconds=1))
        if start == session.start_at:
            return session
        updated = session.model_copy(update={
            "start_at": start,
            "expires_at": start + timedelta(minutes=mode.duration_minutes),
        })
        self._store.save(updated)
        logger.debug("Check hebdomadaire %s avancé à %s", session.id, start.isoformat())
        return updated

    # ----------------------------------------------------------------
    # Lecture
    # ----------------------------------------------------------------

    def get(self, session_id: uuid.UUID) -> Optional[LocationCheckSession]:
        return self._store.get(session_id)

    def list_for(self, actor: Actor) -> List[LocationCheckSession]:
        """Checks visibles par un gestionnaire, du plus récent (start_at) au plus ancien."""
        self._require_manager(actor)
        category = actor.category if is_category_scoped(actor) else None
        sessions = self._store.list_all(category=category)
        return sorted(sessions, key=lambda s: s.start_at, reverse=True)

    def list_active(self, now: datetime, category=ALL_CATEGORIES) -> List[LocationCheckSession]:
        """
        Checks ouverts à l'instant now (start <= now < fin), dans l'ordre de création.
        Les checks full-time sont toujours actifs. Si category est fournie (même None),
        seuls les checks globaux et ceux de cette catégorie sont retenus.
        """
        active = []
        for session in self._visible(category):
            occurrence = current_occurrence(session, now)
            if occurrence is None or occurrence.start <= now < occurrence.end:
                active.append(session)
        return active

    def active_for(self, actor: Actor, now: datetime) -> Optional[LocationCheckSession]:
        """Check actif le plus récent (start_at) pour l'utilisateur, ou None."""
        active = self.list_active(now, category=actor.category)
        if not active:
            return None
        return max(active, key=lambda s: s.start_at)

    def candidates(self, now: datetime, category=ALL_CATEGORIES) -> List[LocationCheckSession]:
        """
        Checks pouvant recevoir un pointage : full-time, ou occurrence dont le balayage
        (start + durée + lateWindow) n'est pas passé, y compris avant le début (early).
        Ordre explicite : du plus ancien au plus récent (date de création).
        """
        result = []
        for session in self._visible(category):
            occurrence = current_occurrence(session, now)
            if occurrence is None or now <= occurrence.closes_at:
                result.append(session)
        return result

    # ----------------------------------------------------------------
    # Helpers
    # ----------------------------------------------------------------

    def _visible(self, category) -> List[LocationCheckSession]:
        sessions = sorted(self._store.list_all(), key=lambda s: (s.created_at, str(s.id)))
        if category is ALL_CATEGORIES:
            return sessions
        return [s for s in sessions if s.category is None or s.category == category]

    def _region(self, data: LocationCheckCreate) -> GeoRegion:
        radius = data.radius if data.radius is not None else settings.DEFAULT_RADIUS_METERS
        return GeoRegion(latitude=data.latitude, longitude=data.longitude, radius=radius)

    def _allowed_user_ids(self, user_ids: List[uuid.UUID], actor: Actor) -> List[uuid.UUID]:
        """Ne garde que les utilisateurs que l'acteur peut inscrire (doublons retirés)."""
        if not user_ids:
            return []
        category = actor.category if is_category_scoped(actor) else None
        allowed = self._enrollment.eligible_user_ids(category)
        return [uid for uid in dict.fromkeys(user_ids) if uid in allowed]

    def _require_manager(self, actor: Actor) -> None:
        if actor.role not in settings.MANAGER_ROLES:
            raise Forbidden()

    def _require_scope(self, session: LocationCheckSession, actor: Actor) -> None:
        if is_category_scoped(actor) and session.category != actor.category:
            raise Forbidden("Ce check appartient à une autre catégorie.")
